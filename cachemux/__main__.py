import sys

from cachemux.cli import main

sys.exit(main())
