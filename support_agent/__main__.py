"""Allow ``python -m support_agent``."""
from support_agent.app import main

raise SystemExit(main())
