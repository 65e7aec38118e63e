import sys

from ovirtagent.cli import main

sys.exit(main())
