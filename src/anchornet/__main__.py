import sys

from anchornet.cli import main

sys.exit(main())
