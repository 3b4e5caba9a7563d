from backup_core.cli import main

raise SystemExit(main())
