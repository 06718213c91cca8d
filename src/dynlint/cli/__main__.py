import sys

from dynlint.cli import main

sys.exit(main())
