import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*`, `codec.*`, `store.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture(autouse=True)
def fixed_user_identity():
    # User-bound envelopes use a fixed identity so tests don't depend on the host
    from codec import envelope

    envelope.set_user_protector(envelope.UserBoundProtector(identity=b"tester\0test-machine"))
    yield
    envelope.set_user_protector(None)
