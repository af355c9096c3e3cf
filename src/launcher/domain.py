"""
Loading domains - isolated import boundaries.

A loading domain owns a sealed list of artefact locations (directories and
importable archives), a parent link and a private module table.

Top-level imports resolve through the domain's locations first, then
through its parents, then through the interpreter's own sys.path. Every
spec found this way is tagged with the domain that provided it, and
submodules inherit the tag of their package. An import statement executed
by tagged code resolves through the owning domain again, whichever thread
runs it and whether or not a binding is active. Untagged code resolves
through the domain bound to the current execution context.

Only one domain chain's modules are visible in sys.modules at a time. When
another view is needed, the modules loaded from the attached chain move back
into their owning domain's table, so sibling domains never see each other's
modules. Views are switched under a process-wide lock.
"""
import builtins
import importlib
import importlib.abc
import importlib.machinery
import logging
import os
import pkgutil
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from launcher.errors import (
    DomainConstructionError,
    DomainReleasedError,
    ReleaseFailedError,
    UnitNotFoundError,
)

logger = logging.getLogger(__name__)

# Spec attribute naming the domain a module was loaded from
DOMAIN_ATTR = "loading_domain"

_active_domain: ContextVar[Optional["LoadingDomain"]] = ContextVar('active_domain', default=None)
_swap_lock = threading.RLock()
_local = threading.local()
_MISSING = object()

# Domain whose chain is currently visible in sys.modules, and what it displaced
_attached: Optional["LoadingDomain"] = None
_attached_saved: Dict[str, Any] = {}

_builtin_import = builtins.__import__
_hooks_installed = False


def _spec_domain(spec: Any) -> Optional["LoadingDomain"]:
    return getattr(spec, DOMAIN_ATTR, None)


class _DomainFinder(importlib.abc.MetaPathFinder):
    """Resolve imports through the domain chain that owns them."""

    def find_spec(self, fullname, path=None, target=None):
        if path is not None:
            # Submodules belong to the domain of their package
            package = sys.modules.get(fullname.rpartition('.')[0])
            owner = _spec_domain(getattr(package, '__spec__', None))
            if owner is None:
                return None
            spec = importlib.machinery.PathFinder.find_spec(fullname, path)
            if spec is not None:
                setattr(spec, DOMAIN_ATTR, owner)
            return spec

        domain = _active_domain.get()
        if domain is None:
            return None

        for member in domain.chain():
            spec = importlib.machinery.PathFinder.find_spec(fullname, list(member.search_path))
            if spec is not None:
                setattr(spec, DOMAIN_ATTR, member)
                logger.debug(f"Resolved {fullname} in domain {member.name}")
                return spec
        return None


_FINDER = _DomainFinder()


def _domain_import(name, globals=None, locals=None, fromlist=(), level=0):
    """__import__ replacement resolving through the importing module's domain."""
    if getattr(_local, 'switching', False):
        return _builtin_import(name, globals, locals, fromlist, level)

    domain = _spec_domain(globals.get('__spec__')) if isinstance(globals, dict) else None
    if domain is None or domain.released:
        domain = _active_domain.get()
    if domain is None and _attached is None:
        return _builtin_import(name, globals, locals, fromlist, level)

    with _pinned(domain):
        return _builtin_import(name, globals, locals, fromlist, level)


def _install_hooks() -> None:
    global _builtin_import, _hooks_installed
    if _FINDER not in sys.meta_path:
        sys.meta_path.insert(0, _FINDER)
    if not _hooks_installed:
        _builtin_import = builtins.__import__
        builtins.__import__ = _domain_import
        _hooks_installed = True


def _module_paths(module: Any) -> List[str]:
    """Filesystem paths a module was loaded from (origin and package path)."""
    # sys.modules may hold arbitrary objects
    try:
        spec = getattr(module, '__spec__', None)
        origin = getattr(spec, 'origin', None) or getattr(module, '__file__', None)
        paths = [origin] if isinstance(origin, str) else []
        paths.extend(p for p in list(getattr(module, '__path__', None) or []) if isinstance(p, str))
        return paths
    except Exception:
        return []


def _owner(module: Any, chain: List["LoadingDomain"]) -> Optional["LoadingDomain"]:
    tagged = _spec_domain(getattr(module, '__spec__', None))
    if tagged is not None:
        return tagged if any(member is tagged for member in chain) else None

    paths = _module_paths(module)
    if not paths:
        return None
    for member in chain:
        if any(member.contains_path(path) for path in paths):
            return member
    return None


def _attach(domain: "LoadingDomain") -> Dict[str, Any]:
    """
    Make a domain chain's modules visible in sys.modules.

    Returns:
        Previous sys.modules values of every name that was touched
    """
    chain = domain.chain()

    provided: Set[str] = set()
    visible: Dict[str, ModuleType] = {}
    for member in reversed(chain):
        provided.update(member.provided_names())
        visible.update(member.modules)

    saved: Dict[str, Any] = {}
    # Hide outside modules shadowed by names the chain provides
    for name, module in list(sys.modules.items()):
        if name in visible:
            continue
        if name.partition('.')[0] in provided and _owner(module, chain) is None:
            saved[name] = sys.modules.pop(name)

    for name, module in visible.items():
        saved[name] = sys.modules.get(name, _MISSING)
        sys.modules[name] = module

    return saved


def _harvest(domain: "LoadingDomain") -> None:
    """Move modules loaded from a domain chain out of sys.modules."""
    chain = domain.chain()
    for name, module in list(sys.modules.items()):
        owner = _owner(module, chain)
        if owner is not None:
            owner.modules[name] = module
            del sys.modules[name]


def _restore(saved: Dict[str, Any]) -> None:
    for name, module in saved.items():
        if module is _MISSING:
            sys.modules.pop(name, None)
        else:
            sys.modules[name] = module


def _switch(domain: Optional["LoadingDomain"]) -> None:
    """Make a domain chain (None = ambient) the visible one. Caller holds the lock."""
    global _attached, _attached_saved
    if domain is not None and domain.released:
        domain = None
    if domain is _attached:
        return

    _local.switching = True
    try:
        if _attached is not None:
            _harvest(_attached)
            _restore(_attached_saved)
        _attached, _attached_saved = None, {}
        if domain is not None:
            _attached_saved = _attach(domain)
            _attached = domain
    finally:
        _local.switching = False


@contextmanager
def _binding(domain: Optional["LoadingDomain"]):
    """Re-bind the execution context to a domain (None = ambient)."""
    previous = _active_domain.get()
    with _swap_lock:
        _install_hooks()
        _switch(domain)

    token = _active_domain.set(domain)
    try:
        yield
    finally:
        _active_domain.reset(token)
        with _swap_lock:
            _switch(previous)


@contextmanager
def _pinned(domain: Optional["LoadingDomain"]):
    """Hold the swap lock with a domain's view visible and active."""
    with _swap_lock:
        _install_hooks()
        prior = _attached
        _switch(domain)
        token = _active_domain.set(domain)
        try:
            yield
        finally:
            _active_domain.reset(token)
            _switch(prior)


def _resolve(name: str, domain_name: str) -> Any:
    """Import "module[:attr.path]" in the current binding."""
    module_name, _, attr_path = name.partition(':')
    if not module_name:
        raise UnitNotFoundError(f"Invalid unit name: {name!r}")

    try:
        target = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        if e.name and (module_name == e.name or module_name.startswith(e.name + '.')):
            raise UnitNotFoundError(f"{module_name} not found in domain {domain_name}") from e
        raise

    if attr_path:
        for attr in attr_path.split('.'):
            try:
                target = getattr(target, attr)
            except AttributeError as e:
                raise UnitNotFoundError(f"{name} not found in domain {domain_name}") from e
    return target


class AmbientDomain:
    """The interpreter's own import system; root of every domain chain."""

    name = "ambient"
    parent = None
    locations: Tuple[Path, ...] = ()
    owned = False
    releasable = False
    released = False

    def chain(self) -> List["LoadingDomain"]:
        return []

    def bound(self):
        return _binding(None)

    def lookup(self, name: str) -> Any:
        with _pinned(None):
            return _resolve(name, self.name)

    def release(self) -> None:
        pass

    def __repr__(self) -> str:
        return "<AmbientDomain>"


AMBIENT_DOMAIN = AmbientDomain()


def current_domain():
    """Domain the current execution context is bound to."""
    domain = _active_domain.get()
    return domain if domain is not None else AMBIENT_DOMAIN


class LoadingDomain:
    """Isolated import boundary over a sealed set of artefact locations."""

    def __init__(
        self,
        locations: Iterable,
        parent=None,
        name: Optional[str] = None,
        owned: bool = False,
        releasable: bool = True,
    ):
        """
        Initialize loading domain.

        Args:
            locations: Artefact locations (directories or archives)
            parent: Parent domain for unresolved lookups (default: ambient)
            name: Display name
            owned: True if the creator must release this domain
            releasable: True if releasing has an effect

        Raises:
            DomainConstructionError: If a location is not a usable path
        """
        self.parent = parent if parent is not None else AMBIENT_DOMAIN
        self.owned = owned
        self.releasable = releasable
        self.modules: Dict[str, ModuleType] = {}
        self._released = False
        self._provided: Optional[Set[str]] = None

        seen = []
        for location in locations:
            try:
                path = Path(os.path.abspath(os.fspath(location)))
            except (TypeError, ValueError) as e:
                raise DomainConstructionError(f"Cannot register artefact {location!r}: {e}") from e
            if '\0' in str(path):
                raise DomainConstructionError(f"Cannot register artefact {location!r}: null byte in path")
            if path not in seen:
                seen.append(path)

        self._locations: Tuple[Path, ...] = tuple(seen)
        self.search_path: Tuple[str, ...] = tuple(str(p) for p in self._locations)
        self.name = name or f"domain-{id(self):x}"

    @property
    def locations(self) -> Tuple[Path, ...]:
        """Artefact locations, sealed at construction."""
        return self._locations

    @property
    def released(self) -> bool:
        return self._released

    def chain(self) -> List["LoadingDomain"]:
        """This domain followed by its non-ambient ancestors."""
        members = []
        domain = self
        while domain is not None and domain is not AMBIENT_DOMAIN:
            domain = getattr(domain, 'target', domain)
            if isinstance(domain, LoadingDomain) and not domain.released:
                members.append(domain)
            domain = domain.parent
        return members

    def contains_path(self, path: str) -> bool:
        """True if a filesystem path lies inside one of the locations."""
        for location in self.search_path:
            if path == location or path.startswith(location.rstrip(os.sep) + os.sep):
                return True
        return False

    def provided_names(self) -> Set[str]:
        """Top-level module names importable from the locations."""
        if self._provided is None:
            self._provided = {name for _, name, _ in pkgutil.iter_modules(list(self.search_path))}
        return self._provided

    def _check_released(self) -> None:
        if self._released:
            raise DomainReleasedError(f"Domain {self.name} has been released")

    def bound(self):
        """
        Context manager binding the execution context to this domain.

        The previous binding is restored on every exit path.
        """
        self._check_released()
        return _binding(self)

    def lookup(self, name: str) -> Any:
        """
        Resolve a named unit, own locations first, then the parent chain.

        Args:
            name: "package.module" or "package.module:Attr.sub"

        Returns:
            The module or attribute

        Raises:
            UnitNotFoundError: If nothing in the chain provides the unit
            DomainReleasedError: If the domain has been released
        """
        self._check_released()
        with _pinned(self):
            return _resolve(name, self.name)

    def release(self) -> None:
        """
        Drop loaded modules and cached importers for the locations.

        Idempotent.

        Raises:
            ReleaseFailedError: If the import state could not be cleaned up
        """
        if self._released:
            return

        try:
            with _swap_lock:
                if _attached is not None and any(member is self for member in _attached.chain()):
                    _switch(None)
                self._released = True
                for name, module in list(sys.modules.items()):
                    if _owner(module, [self]) is not None:
                        del sys.modules[name]
                count = len(self.modules)
                self.modules.clear()
                for location in self.search_path:
                    sys.path_importer_cache.pop(location, None)
        except RuntimeError as e:
            raise ReleaseFailedError(f"Failed to release domain {self.name}: {e}") from e

        logger.debug(f"Released domain {self.name} ({count} modules)")

    def __repr__(self) -> str:
        return f"<LoadingDomain {self.name} locations={len(self._locations)} owned={self.owned}>"


class BorrowedDomain:
    """
    Non-owning handle onto another domain.

    Recorded in the application domain list for loose artefacts that share
    the runtime domain. Never released through this handle.
    """

    owned = False
    releasable = False

    def __init__(self, target):
        self.target = target

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def parent(self):
        return self.target.parent

    @property
    def locations(self) -> Tuple[Path, ...]:
        return self.target.locations

    @property
    def released(self) -> bool:
        return self.target.released

    def chain(self) -> List[LoadingDomain]:
        return self.target.chain()

    def bound(self):
        return self.target.bound()

    def lookup(self, name: str) -> Any:
        return self.target.lookup(name)

    def release(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<BorrowedDomain of {self.target.name}>"


def find_domain(unit_name: str, domains: Optional[Iterable]) -> Optional[Any]:
    """
    Find the first domain that resolves a unit.

    Args:
        unit_name: "package.module[:Attr]"
        domains: Candidate domains (None yields None)

    Returns:
        The resolving domain, or None
    """
    if domains is None:
        return None

    for domain in domains:
        try:
            domain.lookup(unit_name)
            return domain
        except (UnitNotFoundError, DomainReleasedError):
            continue
    return None


def find_domain_for(instance: Any, domains: Optional[Iterable]) -> Optional[Any]:
    """Find the domain that loaded an object's class."""
    if domains is None:
        return None

    cls = type(instance)
    unit_name = f"{cls.__module__}:{cls.__qualname__}"
    for domain in domains:
        try:
            if domain.lookup(unit_name) is cls:
                return domain
        except (UnitNotFoundError, DomainReleasedError):
            continue
    return None
