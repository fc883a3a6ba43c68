import sys

from mediatool.cli import main

sys.exit(main())
