"""Root conftest: ensure the ``src`` directory is on sys.path.

pytest's default ``prepend`` import mode inserts the *test* directory into
``sys.path``. Adding ``src`` lets the tests import ``spatialrf`` from a plain
checkout without an editable install.
"""

import os
import sys

_SRC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)
