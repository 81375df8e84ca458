"""Allow ``python -m narrowtype``."""

from narrowtype.main import main

raise SystemExit(main())
