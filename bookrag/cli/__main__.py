"""Allow ``python -m bookrag.cli`` to run the ingestion CLI."""

import sys

from bookrag.cli.ingest import main

sys.exit(main())
