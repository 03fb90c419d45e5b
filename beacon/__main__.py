import sys

from beacon.app.cli import main

sys.exit(main())
