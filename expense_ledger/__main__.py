import sys

from expense_ledger.cli import main

sys.exit(main())
