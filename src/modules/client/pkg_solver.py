#!/usr/bin/python
#
# CDDL HEADER START
#
# The contents of this file are subject to the terms of the
# Common Development and Distribution License (the "License").
# You may not use this file except in compliance with the License.
#
# You can obtain a copy of the license at usr/src/OPENSOLARIS.LICENSE
# or http://www.opensolaris.org/os/licensing.
# See the License for the specific language governing permissions
# and limitations under the License.
#
# When distributing Covered Code, include this CDDL HEADER in each
# file and include the License file at usr/src/OPENSOLARIS.LICENSE.
# If applicable, add the following below this CDDL HEADER, with the
# fields enclosed by brackets "[]" replaced with your own identifying
# information: Portions Copyright [yyyy] [name of copyright owner]
#
# CDDL HEADER END
#

#
# Copyright (c) 2024, Oracle and/or its affiliates. All rights reserved.
#

"""Provides the interfaces and exceptions needed to determine which packages
must be installed or upgraded, and to which version, to satisfy a requested
upgrade together with the dependency constraints of every package involved."""

import time

from collections import defaultdict, namedtuple, OrderedDict

import pkgup.client.api_errors as apx
import pkgup.version as version

from pkgup.client import global_settings
from pkgup.client.pkgdefs import ACTION_INSTALL, ACTION_SKIP, \
    ACTION_UNRESOLVABLE, ACTION_UPGRADE, ORIGIN_EXPLICIT
from pkgup.misc import EmptyI

logger = global_settings.logger

SOLVER_INIT    = "Initialized"
SOLVER_FAIL    = "Failed"
SOLVER_SUCCESS = "Succeeded"

#
# Constants representing reasons why packages could not be resolved.  Values
# below must be unique, but can be changed at any time.
#
_UNRES_NOT_FOUND = 0            # not published by any source
_UNRES_NO_VERSION = 1           # no version satisfies all constraints
_UNRES_EXACT_CONFLICT = 2       # different exact versions required
_UNRES_DOWNGRADE = 3            # constraints exclude installed and newer
_UNRES_CYCLE = 4                # part of a dependency cycle
_UNRES_DEPENDENCY = 5           # requires an unresolvable package
_UNRES_NO_CONVERGENCE = 6       # constraints kept changing
_UNRES_INVALID_METADATA = 7     # the published metadata is unusable
_UNRES_MAX = 8                  # number of reason constants

# The kinds of origin a constraint on a package may have.
_CON_REQUEST = "request"        # the request of an explicit root
_CON_DEPEND = "depend"          # a dependency declared by a planned package
_CON_CASCADE = "cascade"        # a planned package excludes the installed one

# Each package may be re-evaluated this many times more than it has versions
# before resolution of it is abandoned.
_MAX_EXTRA_VISITS = 8


class DependencyException(Exception):
    """local exception used to pass failure to resolve a package out of
    nested evaluation"""

    def __init__(self, reason_id, reason, names=EmptyI):
        Exception.__init__(self)
        assert reason_id in range(_UNRES_MAX)
        self.__names = tuple(names)
        self.__reason_id = reason_id
        self.__reason = reason

    def __str__(self):
        return self.__reason

    @property
    def names(self):
        """The names of the packages related to the exception."""
        return self.__names

    @property
    def reason_id(self):
        """A constant indicating why the related packages were rejected."""
        return self.__reason_id

    @property
    def reason(self):
        """A string describing why the related packages were rejected."""
        return self.__reason


_PackageRequest = namedtuple("PackageRequest", ["name", "constraint",
    "origin"])

class PackageRequest(_PackageRequest):
    """A request for a package.  'constraint' is a
    pkgup.version.Constraint; 'origin' is ORIGIN_EXPLICIT for a root of
    the run and ORIGIN_DEPENDENCY for a package pulled in by another."""

    __slots__ = ()

    def __new__(cls, name, constraint=None, origin=ORIGIN_EXPLICIT):
        if constraint is None:
            constraint = version.Constraint()
        return _PackageRequest.__new__(cls, name, constraint, origin)

    def __str__(self):
        if type(self.constraint) is version.Constraint:
            return self.name
        return "{0}@{1}".format(self.name, self.constraint)


# One step of a resolution plan.  'from_version' is None for a package which
# is not installed, 'to_version' None for an unresolvable one.  'roots' is the
# tuple of explicit root names whose resolution required the package, 'reason'
# the DependencyException of an unresolvable package and 'index' the position
# of the entry in the plan.
ResolutionPlanEntry = namedtuple("ResolutionPlanEntry", ["name",
    "from_version", "to_version", "action", "roots", "reason", "index"])


class ResolutionPlan(object):
    """The ordered list of package version transitions computed by the
    solver.  Dependencies always precede the packages that depend on
    them.  Requests naming packages no source publishes are listed in
    'not_found' instead.

    Only explicit roots appear as unresolvable entries.  'failures' maps
    the name of every package that could not be resolved, root or not, to
    its DependencyException."""

    def __init__(self, requests=EmptyI):
        self.requests = tuple(requests)
        self.entries = []
        self.not_found = []
        self.failures = OrderedDict()

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)

    def __str__(self):
        s = ""
        for e in self.entries:
            s += "{0:d} {1} {2} -> {3} ({4})".format(e.index, e.name,
                e.from_version, e.to_version, e.action)
            if e.reason:
                s += ": {0}".format(e.reason)
            s += "\n"
        for name, e in self.failures.items():
            if self.get(name) is None:
                s += "{0}: {1}\n".format(name, e)
        for name in self.not_found:
            s += "{0}: not found\n".format(name)
        return s

    def get(self, name):
        """Returns the entry for the named package or None."""
        for e in self.entries:
            if e.name == name:
                return e
        return None

    @property
    def unresolvable(self):
        """The entries that could not be resolved."""
        return [e for e in self.entries if e.action == ACTION_UNRESOLVABLE]


class PkgSolver(object):
    """Determines the lowest set of version changes that satisfies a
    request to upgrade packages and the dependency constraints of every
    package affected by it."""

    def __init__(self, catalog, installed_dict):
        """Create a PkgSolver instance; 'catalog' provides the metadata of
        every available package through get_metadata(name) and
        'installed_dict' is a dict of the InstalledPackage objects currently
        installed indexed by name."""

        self.__catalog = catalog
        self.__installed = dict(installed_dict)
        self.__dependents = None    # installed dependents by package name

        self.__state = SOLVER_INIT
        self.__timings = []
        self.__start_time = None
        self.__iterations = 0
        self.__reset()

    def __reset(self):
        self.__constraints = defaultdict(OrderedDict) # by name, then origin
        self.__targets = OrderedDict()    # chosen version or None if the
                                          # installed version is kept
        self.__failed = OrderedDict()     # DependencyException by name
        self.__links = defaultdict(set)   # packages each package pulled in
        self.__discovered = []            # names in order of discovery
        self.__visits = defaultdict(int)
        self.__ignored = frozenset()
        self.__md_errors = {}             # DependencyException by name

    def __str__(self):
        s = "Solver: ["
        if self.__state in [SOLVER_FAIL, SOLVER_SUCCESS]:
            s += " Packages: {0:d} Unresolvable: {1:d} Iterations: " \
                "{2:d}".format(len(self.__targets), len(self.__failed),
                self.__iterations)
        s += " State: {0}]".format(self.__state)

        s += "\nTimings: ["
        s += ", ".join([
            "{0}: {1: 6.3f}".format(*a)
            for a in self.__timings
        ])
        s += "]"
        return s

    def __start_phase(self):
        self.__start_time = time.time()
        self.__timings = []

    def __end_subphase(self, name):
        now = time.time()
        self.__timings.append((name, now - self.__start_time))
        self.__start_time = now

    @property
    def state(self):
        return self.__state

    def __get_metadata(self, name):
        """Returns the metadata of the named package, or None if no source
        publishes it or its metadata could not be loaded; the latter is
        recorded so that the package is reported as unresolvable."""

        if name in self.__md_errors:
            return None
        try:
            return self.__catalog.get_metadata(name)
        except apx.ApiException as e:
            logger.debug("{0}: unable to load metadata: {1}".format(name, e))
            self.__md_errors[name] = DependencyException(
                _UNRES_INVALID_METADATA, str(e), names=(name,))
            return None

    def __installed_version(self, name):
        pkg = self.__installed.get(name)
        if pkg is None:
            return None
        return pkg.version

    def __get_dependents(self, name):
        """Returns a list of (dependent name, constraint) tuples for the
        installed packages whose installed version declares a dependency
        on the named package.  The dependencies recorded when a package
        was installed are used where available, otherwise those that the
        sources publish for the installed version."""

        if self.__dependents is None:
            dependents = defaultdict(list)
            for pname, pkg in sorted(self.__installed.items()):
                for dname, con in self.__installed_dependencies(pkg):
                    dependents[dname].append((pname, con))
            self.__dependents = dependents
        return self.__dependents.get(name, EmptyI)

    def __installed_dependencies(self, pkg):
        mfst = pkg.manifest
        if mfst is not None and mfst.dependencies is not None:
            deps = []
            for dname, con in mfst.dependencies:
                try:
                    deps.append((dname, version.parse_constraint(con)))
                except version.VersionError:
                    logger.debug("{0}: ignoring invalid recorded "
                        "dependency {1} {2}".format(pkg.name, dname, con))
            return deps

        md = self.__get_metadata(pkg.name)
        if md is None or not md.has_version(pkg.version):
            return EmptyI
        return [(d.name, d.constraint) for d in md.dependencies(pkg.version)]

    def __discover(self, name):
        if name not in self.__discovered:
            self.__discovered.append(name)

    def __describe_constraints(self, name):
        """Returns a human readable list of the constraints on a package
        and where they came from."""

        descs = []
        for (kind, origin), con in self.__constraints[name].items():
            if kind == _CON_REQUEST:
                src = _("the request")
            elif kind == _CON_DEPEND:
                src = "{0} {1}".format(origin, self.__targets.get(origin))
            else:
                src = _("the upgrade of {0}").format(origin)
            descs.append(_("{con} (required by {src})").format(con=con,
                src=src))
        return ", ".join(descs)

    def __root_constraint(self, req, md):
        """Returns the constraint an explicit request places on the
        package: the request's own constraint, or the newest available
        version if the request is unconstrained."""

        if req.constraint.exact is not None or \
            type(req.constraint) is not version.Constraint:
            return req.constraint
        return version.RangeConstraint(minimum=md.newest)

    def __compatible(self, md, ver):
        """Returns whether the dependencies declared by 'ver' admit every
        version already chosen for the packages they name."""

        for dep in md.dependencies(ver):
            target = self.__targets.get(dep.name)
            if target is not None and not dep.constraint.allows(target):
                return False
        return True

    def __select(self, name, md):
        """Returns the version to plan for the named package, or None if
        the installed version satisfies every constraint and may be kept.
        Raises DependencyException if no version can be chosen."""

        cons = self.__constraints[name]
        kinds = set(kind for kind, origin in cons)
        installed = self.__installed_version(name)

        exacts = set(c.exact for c in cons.values() if c.exact is not None)
        if len(exacts) > 1:
            raise DependencyException(_UNRES_EXACT_CONFLICT,
                _("conflicting exact versions of {name} are required: "
                "{cons}").format(name=name,
                cons=self.__describe_constraints(name)), names=(name,))

        if _CON_REQUEST not in kinds and _CON_CASCADE not in kinds and \
            installed is not None and \
            all(c.allows(installed) for c in cons.values()):
            return None

        candidates = [
            v for v in md.versions
            if all(c.allows(v) for c in cons.values())
        ]
        if _CON_CASCADE in kinds:
            candidates = [v for v in candidates if self.__compatible(md, v)]
        if not candidates:
            raise DependencyException(_UNRES_NO_VERSION,
                _("no available version of {name} satisfies "
                "{cons}").format(name=name,
                cons=self.__describe_constraints(name)), names=(name,))

        chosen = candidates[0]
        if _CON_REQUEST not in kinds and installed is not None and \
            chosen < installed:
            raise DependencyException(_UNRES_DOWNGRADE,
                _("{name} {installed} would have to be downgraded to "
                "satisfy {cons}").format(name=name, installed=installed,
                cons=self.__describe_constraints(name)), names=(name,))
        return chosen

    def __retract(self, name, queue):
        """Withdraws the constraints the named package placed on other
        packages and queues them for re-evaluation."""

        for other in sorted(self.__links.pop(name, EmptyI)):
            cons = self.__constraints[other]
            cons.pop((_CON_DEPEND, name), None)
            cons.pop((_CON_CASCADE, name), None)
            queue(other)

    def __process(self, name, queue):
        """Chooses a version for the named package and propagates the
        consequences of that choice to its dependencies and installed
        dependents."""

        self.__iterations += 1
        if not self.__constraints[name]:
            # Nothing requires the package any longer.
            self.__targets.pop(name, None)
            self.__failed.pop(name, None)
            self.__retract(name, queue)
            return

        md = self.__get_metadata(name)
        if md is None:
            self.__failed[name] = self.__md_errors.get(name) or \
                DependencyException(_UNRES_NOT_FOUND,
                _("{0} is not available from any source").format(name),
                names=(name,))
            return

        self.__visits[name] += 1
        if self.__visits[name] > len(md.versions) + _MAX_EXTRA_VISITS:
            self.__fail(name, DependencyException(_UNRES_NO_CONVERGENCE,
                _("the constraints on {0} could not be "
                "reconciled").format(name), names=(name,)), queue)
            return

        try:
            chosen = self.__select(name, md)
        except DependencyException as e:
            self.__fail(name, e, queue)
            return

        self.__failed.pop(name, None)
        if name in self.__targets and self.__targets[name] == chosen:
            return

        self.__targets[name] = chosen
        self.__retract(name, queue)
        if chosen is None or name in self.__ignored:
            return

        for dep in md.dependencies(chosen):
            self.__discover(dep.name)
            self.__constraints[dep.name][(_CON_DEPEND, name)] = \
                dep.constraint
            self.__links[name].add(dep.name)
            queue(dep.name)

        for parent, con in self.__get_dependents(name):
            if self.__targets.get(parent) is not None or \
                con.allows(chosen):
                continue
            logger.debug("{0} {1} excludes installed {2} {3}".format(
                name, chosen, parent, self.__installed_version(parent)))
            self.__discover(parent)
            self.__constraints[parent][(_CON_CASCADE, name)] = \
                version.RangeConstraint(
                minimum=self.__installed_version(parent),
                min_inclusive=False)
            self.__links[name].add(parent)
            queue(parent)

    def __fail(self, name, e, queue):
        self.__failed[name] = e
        self.__targets.pop(name, None)
        self.__retract(name, queue)

    def __get_edges(self, name):
        """Returns the names of the planned packages the planned version of
        'name' depends on."""

        target = self.__targets.get(name)
        if target is None or name in self.__failed or \
            name in self.__ignored:
            return EmptyI
        md = self.__get_metadata(name)
        return [
            d.name for d in md.dependencies(target)
            if d.name in self.__failed or
            self.__targets.get(d.name) is not None
        ]

    def __order(self, names):
        """Returns a tuple of (order, cycles).  'order' lists 'names' so
        that every package follows the packages it depends on; 'cycles'
        is a list of the dependency cycles found, each a list of names."""

        order = []
        cycles = []
        done = set()
        in_progress = []

        def visit(name):
            if name in done:
                return
            if name in in_progress:
                cycles.append(in_progress[in_progress.index(name):] +
                    [name])
                return
            in_progress.append(name)
            for dep in self.__get_edges(name):
                visit(dep)
            in_progress.pop()
            done.add(name)
            order.append(name)

        for name in names:
            visit(name)
        return order, cycles

    def __closure(self, root):
        """Returns the set of packages whose resolution was required by the
        named root."""

        closure = set()
        needs_processing = set([root])
        while needs_processing:
            name = needs_processing.pop()
            closure.add(name)
            needs_processing |= self.__links.get(name, set()) - closure
        return closure

    def solve(self, requests, ignore_dependencies=False):
        """Returns a ResolutionPlan for the PackageRequests in 'requests'.

        'ignore_dependencies' is either a boolean applying to every request
        or a collection of the names of the requests for which dependency
        constraints are neither followed nor validated.

        Packages that cannot be resolved, and every explicit root whose
        resolution required one of them, are returned as ACTION_UNRESOLVABLE
        entries; roots unrelated to them are resolved normally."""

        self.__start_phase()
        self.__reset()

        if isinstance(ignore_dependencies, bool):
            if ignore_dependencies:
                self.__ignored = frozenset(r.name for r in requests)
        else:
            self.__ignored = frozenset(ignore_dependencies)

        plan = ResolutionPlan(requests)
        roots = []
        pending = []

        def queue(name):
            if name not in pending:
                pending.append(name)

        for req in requests:
            if req.name in roots:
                continue
            md = self.__get_metadata(req.name)
            if md is None and req.name in self.__md_errors:
                roots.append(req.name)
                self.__discover(req.name)
                self.__failed[req.name] = self.__md_errors[req.name]
                continue
            if md is None:
                if req.name not in plan.not_found:
                    plan.not_found.append(req.name)
                continue
            roots.append(req.name)
            self.__discover(req.name)
            self.__constraints[req.name][(_CON_REQUEST, None)] = \
                self.__root_constraint(req, md)
            queue(req.name)
        self.__end_subphase("requests")

        while pending:
            self.__process(pending.pop(0), queue)
        self.__end_subphase("propagation")

        # Dependency cycles are unresolvable; marking them removes their
        # edges so that the second pass terminates without new cycles.
        while True:
            planned = [
                n for n in self.__discovered
                if n in self.__failed or self.__targets.get(n) is not None
            ]
            order, cycles = self.__order(roots + planned)
            if not cycles:
                break
            for cycle in cycles:
                e = DependencyException(_UNRES_CYCLE,
                    _("dependency cycle: {0}").format(" -> ".join(cycle)),
                    names=cycle[:-1])
                for name in cycle[:-1]:
                    self.__failed[name] = e
        self.__end_subphase("ordering")

        root_failures = OrderedDict()
        owners = defaultdict(list)
        for root in roots:
            closure = self.__closure(root)
            for name in self.__discovered:
                if name in closure:
                    owners[name].append(root)
            if root in self.__failed:
                root_failures[root] = self.__failed[root]
                continue
            bad = [n for n in self.__discovered
                if n in closure and n in self.__failed]
            if bad:
                root_failures[root] = DependencyException(_UNRES_DEPENDENCY,
                    _("{name} requires {deps}, which could not be "
                    "resolved: {reason}").format(name=root,
                    deps=", ".join(bad), reason=self.__failed[bad[0]]),
                    names=bad)

        for name in order:
            if not owners[name]:
                continue
            if name not in self.__failed and \
                self.__targets.get(name) is None:
                continue
            installed = self.__installed_version(name)
            reason = None
            if name in roots:
                reason = root_failures.get(name)
            elif name in self.__failed or \
                all(r in root_failures for r in owners[name]):
                # Reported through the error of the roots requiring it.
                continue

            if reason is not None:
                action = ACTION_UNRESOLVABLE
                target = None
            else:
                target = self.__targets[name]
                if installed is None:
                    action = ACTION_INSTALL
                elif target > installed:
                    action = ACTION_UPGRADE
                else:
                    action = ACTION_SKIP
            plan.entries.append(ResolutionPlanEntry(name, installed, target,
                action, tuple(owners[name]), reason, len(plan.entries)))

        for name in self.__discovered:
            if name in self.__failed:
                plan.failures[name] = self.__failed[name]

        if plan.unresolvable:
            self.__state = SOLVER_FAIL
        else:
            self.__state = SOLVER_SUCCESS
        self.__end_subphase("plan")
        logger.debug(str(self))
        return plan
