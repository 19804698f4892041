import sys

from iscsi_top.app import main

sys.exit(main())
