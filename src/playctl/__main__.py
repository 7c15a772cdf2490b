import sys

from playctl.cli import main

sys.exit(main())
