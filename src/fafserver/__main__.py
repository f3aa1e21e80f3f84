import sys

from fafserver.cli import main

sys.exit(main())
