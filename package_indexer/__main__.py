import sys

from package_indexer.cli import main

sys.exit(main())
