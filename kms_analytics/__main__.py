import sys

from kms_analytics.main import main

sys.exit(main())
