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

"""Objects describing the outcome of an upgrade run: one PackageOutcome per
package that reached a terminal state and the RunSummary that aggregates
them for reporting."""

import threading
from collections import namedtuple

from pkgup.client import pkgdefs
from pkgup.misc import DummyLock

# A message recorded on a package outcome; 'severity' is one of the
# pkgdefs.SEVERITY_* constants.
Message = namedtuple("Message", ["severity", "text"])


class PackageOutcome(object):
        """The terminal result of processing a single package."""

        def __init__(self, name, version=None, location=None, index=0):
                self.name = name
                self.version = version
                self.location = location
                self.index = index
                self.success = False
                self.inconclusive = False
                # True once a version transition was applied on disk.
                self.changed = False
                # The version a noop run would have applied.
                self.pending = None
                self.messages = []

        def __str__(self):
                if self.success:
                        state = "success"
                elif self.inconclusive:
                        state = "inconclusive"
                else:
                        state = "failure"
                return "{0} {1} ({2})".format(self.name, self.version, state)

        def __add_message(self, severity, text):
                self.messages.append(Message(severity, text))

        def info(self, text):
                self.__add_message(pkgdefs.SEVERITY_INFO, text)

        def warn(self, text):
                self.__add_message(pkgdefs.SEVERITY_WARNING, text)

        def error(self, text):
                self.__add_message(pkgdefs.SEVERITY_ERROR, text)

        def get_messages(self, severity=None):
                """Returns the texts of the messages of the given severity, or
                of all messages if 'severity' is None."""
                return [
                    m.text for m in self.messages
                    if severity is None or m.severity == severity
                ]

        @property
        def warning(self):
                """True if any Warning message was recorded."""
                return any(
                    m.severity == pkgdefs.SEVERITY_WARNING
                    for m in self.messages
                )

        @property
        def failed(self):
                return not self.success and not self.inconclusive

        def set_success(self, changed=True):
                self.success = True
                self.inconclusive = False
                self.changed = changed

        def set_inconclusive(self):
                self.success = False
                self.inconclusive = True
                self.changed = False

        def set_failed(self):
                self.success = False
                self.inconclusive = False
                self.changed = False

        def getstate(self):
                """Returns a dictionary describing the outcome suitable for
                serialization."""

                return {
                    "name": self.name,
                    "version": self.version and str(self.version),
                    "location": self.location,
                    "success": self.success,
                    "inconclusive": self.inconclusive,
                    "warning": self.warning,
                    "changed": self.changed,
                    "pending": self.pending and str(self.pending),
                    "messages": [list(m) for m in self.messages],
                }


class RunSummary(object):
        """The ordered mapping of package name to PackageOutcome produced by
        an upgrade run.  Iteration follows the resolution order recorded in
        each outcome's 'index' rather than the order of insertion, so that
        outcomes may be added from several threads."""

        def __init__(self, noop=False, concurrent=True):
                self.noop = noop
                if concurrent:
                        self.__lock = threading.Lock()
                else:
                        self.__lock = DummyLock()
                self.__outcomes = {}
                self.__not_found = {}

        def __len__(self):
                return len(self.__outcomes)

        def __contains__(self, name):
                return name in self.__outcomes or name in self.__not_found

        def __getitem__(self, name):
                with self.__lock:
                        if name in self.__outcomes:
                                return self.__outcomes[name]
                        return self.__not_found[name]

        def __iter__(self):
                return iter([o.name for o in self.outcomes()])

        def __sorted(self, outcomes):
                with self.__lock:
                        return sorted(outcomes.values(),
                            key=lambda o: (o.index, o.name))

        def add(self, outcome):
                """Records the terminal outcome of a package that was
                attempted."""
                with self.__lock:
                        assert outcome.name not in self.__outcomes
                        self.__outcomes[outcome.name] = outcome

        def add_not_found(self, outcome):
                """Records the outcome of a request naming a package that no
                source provides."""
                with self.__lock:
                        self.__not_found[outcome.name] = outcome

        def get(self, name, default=None):
                try:
                        return self[name]
                except KeyError:
                        return default

        def outcomes(self):
                """Returns the outcomes of the attempted packages in
                resolution order."""
                return self.__sorted(self.__outcomes)

        def items(self):
                return [(o.name, o) for o in self.outcomes()]

        @property
        def not_found(self):
                """The outcomes of the requests no source could satisfy."""
                return self.__sorted(self.__not_found)

        @property
        def attempted(self):
                return len(self.__outcomes)

        @property
        def succeeded(self):
                return len([
                    o for o in self.outcomes()
                    if o.success and o.changed
                ])

        @property
        def failed(self):
                return [o for o in self.outcomes() if o.failed] + \
                    self.not_found

        @property
        def warnings(self):
                return [o for o in self.outcomes() if o.warning]

        def ratio(self):
                """Returns a tuple of (succeeded, attempted)."""
                return self.succeeded, self.attempted

        def summary_message(self):
                if self.noop:
                        upgradable = len([
                            o for o in self.outcomes()
                            if o.pending is not None
                        ])
                        return _("pkgup can upgrade {0:d}/{1:d} "
                            "package(s).").format(upgradable, self.attempted)
                return _("pkgup upgraded {0:d}/{1:d} package(s).").format(
                    *self.ratio())

        def not_found_message(self):
                """Returns the message reporting the requests that matched no
                source, or None if there were none."""

                if not self.__not_found:
                        return None
                return _("pkgup upgraded 0/0 package(s). {count:d} "
                    "package(s) not found: {names}").format(
                    count=len(self.__not_found),
                    names=", ".join(o.name for o in self.not_found))

        def exit_code(self):
                """Returns the pkgdefs.EXIT_* value describing the run."""

                outcomes = self.outcomes()
                failed = self.failed
                if not failed:
                        if outcomes and all(o.inconclusive and o.pending is None
                            for o in outcomes):
                                return pkgdefs.EXIT_NOP
                        return pkgdefs.EXIT_OK
                if len(failed) == len(outcomes) + len(self.__not_found):
                        return pkgdefs.EXIT_OOPS
                return pkgdefs.EXIT_PARTIAL

        def getstate(self):
                return {
                    "succeeded": self.succeeded,
                    "attempted": self.attempted,
                    "packages": [o.getstate() for o in self.outcomes()],
                    "not_found": [o.getstate() for o in self.not_found],
                }
