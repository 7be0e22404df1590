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

from pkgup.client import global_settings
logger = global_settings.logger

import pkgup.client.actuator as actuator
import pkgup.client.api_errors as api_errors
import pkgup.client.lockdetect as lockdetect
import pkgup.client.pkg_solver as pkg_solver
import pkgup.client.pkgplan as pkgplan
import pkgup.client.results as results
import pkgup.client.rollback as rollback
import pkgup.file_layout.migrator as migrator

UNEVALUATED       = 0 # nothing done yet
EVALUATED_OK      = 1 # ready to execute
EVALUATED_ERROR   = 2 # resolution found unresolvable packages
EXECUTED_OK       = 3 # finished execution
EXECUTED_ERROR    = 4 # at least one package failed


class ImagePlan(object):
        """An ImagePlan takes a list of requested packages and an Image and
        produces the ordered list of PkgPlans needed to upgrade them, then
        executes those PkgPlans one at a time.

        Each package runs to its own terminal state: a failure while
        upgrading one package is recorded on its outcome and never stops
        the remaining packages."""

        def __init__(self, image, catalog, flags, hook_runner=None):
                self.image = image
                self.catalog = catalog
                self.flags = flags
                if hook_runner is None:
                        hook_runner = actuator.NullHookRunner()
                self.hook_runner = hook_runner

                self.state = UNEVALUATED
                self.plan = None
                self.pkg_plans = []
                self.solver = None
                self.summary = None

                self.__rollback = rollback.RollbackManager(image.backup_dir,
                    image.holding_dir)
                self.__migrator = migrator.LayoutMigrator(image.lib_dir,
                    allow_multiple_versions=flags.allow_multiple_versions)
                self.__detector = lockdetect.LockDetector()

        def __str__(self):
                if self.plan is None:
                        return "UNEVALUATED"
                return str(self.plan)

        def plan_upgrade(self, requests):
                """Determine the package plans needed to satisfy the
                pkg_solver.PackageRequest objects in 'requests'."""

                assert self.state == UNEVALUATED

                installed = self.image.installed_packages()
                self.solver = pkg_solver.PkgSolver(self.catalog, installed)
                self.plan = self.solver.solve(requests,
                    ignore_dependencies=self.flags.ignore_dependencies)
                logger.debug(str(self.solver))

                for entry in self.plan:
                        self.pkg_plans.append(pkgplan.PkgPlan(self.image,
                            entry, self.flags, self.catalog, self.__rollback,
                            self.__detector, self.__migrator,
                            self.hook_runner))

                if self.plan.unresolvable:
                        self.state = EVALUATED_ERROR
                else:
                        self.state = EVALUATED_OK
                return self.plan

        def execute(self):
                """Runs every package plan in resolution order and returns
                the results.RunSummary of the run."""

                assert self.state in (EVALUATED_OK, EVALUATED_ERROR)

                summary = results.RunSummary(noop=self.flags.noop)
                for name in self.plan.not_found:
                        outcome = results.PackageOutcome(name)
                        msg = str(api_errors.PackageNotFound(name))
                        logger.error(msg)
                        outcome.error(msg)
                        outcome.set_failed()
                        summary.add_not_found(outcome)

                for pp in self.pkg_plans:
                        try:
                                outcome = pp.execute()
                        except (api_errors.ApiException,
                            EnvironmentError) as e:
                                logger.debug("{0} failed".format(pp),
                                    exc_info=True)
                                outcome = pp.outcome
                                msg = _("Error upgrading {name}: {err}"
                                    ).format(name=pp.name, err=e)
                                logger.error(msg)
                                outcome.error(msg)
                                outcome.set_failed()
                        summary.add(outcome)

                if summary.failed:
                        self.state = EXECUTED_ERROR
                else:
                        self.state = EXECUTED_OK
                self.summary = summary
                return summary
