import sys

from fortune_oracle.main import main

raise SystemExit(main(sys.argv[1:]))
