import sys

from mailstatus.main import main

sys.exit(main())
