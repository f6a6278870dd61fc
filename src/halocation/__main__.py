from halocation.cli import main

raise SystemExit(main())
