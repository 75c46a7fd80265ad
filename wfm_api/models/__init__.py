# wfm_api/models/__init__.py
import importlib
import pkgutil
import pathlib


def load_all():
    """Import every module in this package (and subpackages) so all models register."""
    pkg_path = pathlib.Path(__file__).parent

    def _walk_and_import(pkg_name: str, path: pathlib.Path):
        for mod in pkgutil.iter_modules([str(path)]):
            if mod.name.startswith("_"):
                continue
            full = f"{pkg_name}.{mod.name}"
            importlib.import_module(full)
            subpath = path / mod.name
            if mod.ispkg and (subpath / "__init__.py").exists():
                _walk_and_import(full, subpath)

    _walk_and_import(__name__, pkg_path)
