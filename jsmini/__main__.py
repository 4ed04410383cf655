import argparse, logging, sys
from pathlib import Path

from jupyter_client.kernelspec import install_kernel_spec

from .kernel import TransportBindFailure, run_kernel

log = logging.getLogger("jsmini")

KERNEL_DIR = Path(__file__).resolve().parents[1] / "share" / "jupyter" / "kernels" / "jsmini"


def _run_kernel_from_cli(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(prog="jsmini")
    parser.add_argument("-f", "--connection-file", required=True)
    args = parser.parse_args(argv)
    try: run_kernel(args.connection_file)
    except TransportBindFailure as exc:
        log.error("%s", exc)
        raise SystemExit(1) from exc


def _install_kernelspec(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(prog="jsmini install")
    scope = parser.add_mutually_exclusive_group()
    scope.add_argument("--user", action="store_true", help="Install for the current user only")
    scope.add_argument("--sys-prefix", action="store_true", help="Install into this Python environment (sys.prefix)")
    scope.add_argument("--prefix", help="Install under PREFIX/share/jupyter/kernels")
    args = parser.parse_args(argv)

    if args.prefix:
        prefix = args.prefix
    elif args.sys_prefix:
        prefix = sys.prefix
    else:
        prefix = None

    if not (KERNEL_DIR / "kernel.json").is_file(): raise SystemExit(f"bundled kernelspec not found at {KERNEL_DIR}")
    dest = install_kernel_spec(str(KERNEL_DIR), kernel_name="jsmini", user=bool(args.user), prefix=prefix, replace=True)
    print(f"Installed jsmini kernelspec in {dest}")


def main() -> None:
    argv = sys.argv[1:]
    if argv and argv[0] == "install":
        _install_kernelspec(argv[1:])
        return
    if argv and argv[0] == "run":
        _run_kernel_from_cli(argv[1:])
        return
    _run_kernel_from_cli(argv)


if __name__ == "__main__":
    main()
