import sys

from signal_engine.main import main

sys.exit(main())
