import sys, pytest
from pathlib import Path
from .kernel_utils import start_kernel
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path: sys.path.insert(0, str(ROOT))


@pytest.fixture
def kernel():
    with start_kernel() as (km, kc): yield km, kc
