from importlib.metadata import PackageNotFoundError, version
from .kernel import JsKernel, run_kernel
from .transform import transform
from .wire import Codec, Message

try:
    __version__ = version("jsmini")
except PackageNotFoundError:  # pragma: no cover - local editable without metadata
    __version__ = "0.0.0+local"

__all__ = ["JsKernel", "run_kernel", "transform", "Codec", "Message", "__version__"]
