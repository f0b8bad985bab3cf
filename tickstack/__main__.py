import sys

from tickstack.cli import main

sys.exit(main())
