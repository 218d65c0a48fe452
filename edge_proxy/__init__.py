"""edge-raw-proxy - edge proxy for raw GitHub content with a decoy root page."""

from importlib.metadata import PackageNotFoundError, version as _pkg_version

try:
    __version__ = _pkg_version("edge-raw-proxy")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for editable installs / dev
