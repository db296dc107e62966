from sntp.main import main

raise SystemExit(main())
