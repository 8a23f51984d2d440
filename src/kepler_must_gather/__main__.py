import sys

from kepler_must_gather.main import main

sys.exit(main())
