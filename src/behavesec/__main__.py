import sys

from behavesec.cli import main

sys.exit(main())
