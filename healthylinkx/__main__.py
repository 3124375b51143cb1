import sys

from healthylinkx.cli import main

sys.exit(main())
