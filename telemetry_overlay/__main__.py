from telemetry_overlay.launcher import main

raise SystemExit(main())
