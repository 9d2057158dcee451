from galtrans.app.main import main

raise SystemExit(main())
