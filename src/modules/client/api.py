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

"""This module provides the supported, documented interface for clients to
upgrade the packages of an install root.

Consumers should catch ApiException when calling any API function, and
may optionally catch any subclass of ApiException for further, specific
error handling.  The failure of an individual package is never raised; it
is recorded on that package's outcome in the returned RunSummary.
"""

import os
import threading

import pkgup.client.actuator as actuator
import pkgup.client.api_errors as apx
import pkgup.client.history as history
import pkgup.client.image as image
import pkgup.client.imageconfig as imageconfig
import pkgup.client.imageplan as ip
import pkgup.client.pkg_solver as pkg_solver
import pkgup.client.publisher as publisher
import pkgup.version

from pkgup.client import global_settings
from pkgup.client.pkgdefs import *

CURRENT_API_VERSION = 1

logger = global_settings.logger


def is_manifest_path(arg):
        """Returns whether 'arg' names a package list manifest file rather
        than a package."""

        return arg.lower().endswith(MANIFEST_SUFFIXES)


def parse_spec(spec):
        """Returns a pkg_solver.PackageRequest for the package specification
        'spec', which is a package name optionally followed by '@' and a
        version constraint.  A bare version selects exactly that version."""

        name, sep, con = spec.partition("@")
        name = name.strip()
        if not name or (sep and not con.strip()):
                raise apx.InvalidPackageSpec(spec)
        try:
                constraint = pkgup.version.parse_constraint(con,
                    bare_exact=True)
        except pkgup.version.VersionError as e:
                raise apx.InvalidPackageSpec(spec, detail=str(e))
        return pkg_solver.PackageRequest(name, constraint, ORIGIN_EXPLICIT)


class UpgradeInterface(object):
        """This class presents an interface to the upgrade engine that
        clients may use.

        'root' is the path of the install root.  'sources' is an optional
        list of publisher.PackageSource objects; if not provided, the
        sources configured for the install root are used.  'hook_runner' is
        an optional actuator.HookRunner; if not provided, hook scripts are
        run according to the run-hooks policy."""

        def __init__(self, root, sources=None, hook_runner=None,
            cfg_overrides=None):
                self.root = os.path.abspath(root)
                self.__cfg = imageconfig.ImageConfig(self.root,
                    overrides=cfg_overrides or {})
                self.__img = image.Image(self.root, cfg=self.__cfg)
                self.__sources = sources
                self.__hook_runner = hook_runner
                self.__activity_lock = threading.Lock()
                self.__plan = None
                self.history = history.History(self.root)

        @property
        def image(self):
                return self.__img

        @property
        def last_plan(self):
                """The ImagePlan of the most recent run, or None."""
                return self.__plan

        def get_catalog(self):
                """Returns the publisher.SourceCatalog used to look up
                packages."""

                sources = self.__sources
                if sources is None:
                        sources = [
                            publisher.DirectorySource(path, name=name)
                            for name, path in self.__cfg.get_sources()
                        ]
                return publisher.SourceCatalog(sources)

        def get_hook_runner(self):
                if self.__hook_runner is not None:
                        return self.__hook_runner
                return actuator.get_default_hook_runner(
                    self.__cfg.get_policy(imageconfig.RUN_HOOKS))

        def get_flags(self, **kwargs):
                """Returns the pkgdefs.UpgradeFlags for a run; keyword
                arguments that are not None override the configured
                policies."""
                return self.__cfg.get_flags(**kwargs)

        def parse_requests(self, pkg_list):
                """Returns the list of pkg_solver.PackageRequest objects for
                the specifications in 'pkg_list'.  The single entry "all"
                selects every installed package.  Raises
                ManifestInputRejected if any entry names a package list
                manifest."""

                for arg in pkg_list:
                        if is_manifest_path(arg):
                                raise apx.ManifestInputRejected(arg)

                requests = []
                for arg in pkg_list:
                        if arg.lower() == ALL_PACKAGES:
                                for name in sorted(
                                    self.__img.installed_packages()):
                                        requests.append(
                                            pkg_solver.PackageRequest(name))
                                continue
                        requests.append(parse_spec(arg))
                return requests

        def upgrade(self, pkg_list, noop=None, force=None,
            ignore_dependencies=None, allow_multiple_versions=None,
            fail_on_not_installed=None):
                """Upgrades the packages named in 'pkg_list' and returns the
                results.RunSummary of the run.

                'pkg_list' is a list of package specifications, or ["all"].
                The remaining arguments override the policy of the same name
                when not None.

                Raises ManifestInputRejected, before anything is evaluated, if
                'pkg_list' names a package list manifest."""

                with self.__activity_lock:
                        self.history.log_operation_start(PKG_OP_UPGRADE,
                            args=pkg_list)
                        try:
                                requests = self.parse_requests(pkg_list)
                                flags = self.get_flags(noop=noop, force=force,
                                    ignore_dependencies=ignore_dependencies,
                                    allow_multiple_versions=
                                    allow_multiple_versions,
                                    fail_on_not_installed=
                                    fail_on_not_installed)
                                logger.debug("upgrade {0} with {1}".format(
                                    " ".join(pkg_list), flags))

                                self.__plan = ip.ImagePlan(self.__img,
                                    self.get_catalog(), flags,
                                    hook_runner=self.get_hook_runner())
                                self.__plan.plan_upgrade(requests)
                                summary = self.__plan.execute()
                        except (apx.ApiException, EnvironmentError) as e:
                                self.history.log_operation_end(error=e)
                                raise
                        self.history.log_operation_end(summary=summary)
                        return summary
