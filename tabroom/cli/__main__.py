import sys

from tabroom.cli import main

sys.exit(main())
