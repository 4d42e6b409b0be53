from minik8s.cli import main

raise SystemExit(main())
