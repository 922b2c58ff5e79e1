from stocknews.cli import main

raise SystemExit(main())
