import sys

from paperdesk.cli import main

sys.exit(main())
