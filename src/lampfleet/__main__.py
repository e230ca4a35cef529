import sys

from lampfleet.cli import main

sys.exit(main())
