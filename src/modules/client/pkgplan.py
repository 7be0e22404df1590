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

import os

import pkgup.client.api_errors as apx
import pkgup.manifest as manifest
import pkgup.misc as misc

from pkgup.client import global_settings, pkgdefs
from pkgup.client.results import PackageOutcome

logger = global_settings.logger

#
# The states a package passes through while it is upgraded.  Every
# non-terminal state has exactly one handler, which returns the next state.
#
STATE_REQUESTED = "requested"
STATE_NOT_INSTALLED = "not-installed"
STATE_INSTALLED = "installed"
STATE_BACKUP = "backup"
STATE_REPLACE = "replace"
STATE_HOOKS = "hooks"
STATE_COMMIT = "commit"
STATE_RESTORE = "restore"

# terminal states
STATE_INSTALLED_FRESH = "installed-fresh"
STATE_REJECTED_NOT_INSTALLED = "rejected-not-installed"
STATE_INCONCLUSIVE = "inconclusive"
STATE_UNRESOLVABLE = "unresolvable"
STATE_COMMITTED = "committed"
STATE_RESTORED = "restored"
STATE_NOOP = "noop"

TERMINAL_STATES = frozenset([
    STATE_INSTALLED_FRESH,
    STATE_REJECTED_NOT_INSTALLED,
    STATE_INCONCLUSIVE,
    STATE_UNRESOLVABLE,
    STATE_COMMITTED,
    STATE_RESTORED,
    STATE_NOOP,
])

# States during which a failure is undone by STATE_RESTORE.
TRANSACTION_STATES = frozenset([
    STATE_BACKUP,
    STATE_REPLACE,
    STATE_HOOKS,
    STATE_COMMIT,
])


class PkgPlan(object):
        """A package plan takes a ResolutionPlanEntry and the Image it applies
        to and drives the package from its installed version to the planned
        one, producing a PackageOutcome.

        The package is backed up before anything below the library directory
        is changed; if replacing its files or running its hooks fails, the
        backup is restored and the new payload is moved to the holding
        directory.  In noop mode the plan stops before the backup is taken.
        """

        def __init__(self, image, entry, flags, catalog, rollback, detector,
            migrator, hook_runner):
                self.image = image
                self.entry = entry
                self.flags = flags
                self.catalog = catalog
                self.rollback = rollback
                self.detector = detector
                self.migrator = migrator
                self.hook_runner = hook_runner

                self.state = STATE_REQUESTED
                self.installed = None
                self.outcome = PackageOutcome(entry.name,
                    version=entry.from_version, index=entry.index)

                self.__base = None      # directory the upgrade starts from
                self.__dest = None      # directory the new version goes to
                self.__staging = None   # fetched payload
                self.__snapshot = None
                self.__created = False  # __dest did not exist before
                self.__error = None

                self.__handlers = {
                    STATE_REQUESTED: self.__evaluate,
                    STATE_NOT_INSTALLED: self.__evaluate_not_installed,
                    STATE_INSTALLED: self.__evaluate_installed,
                    STATE_BACKUP: self.__backup,
                    STATE_REPLACE: self.__replace,
                    STATE_HOOKS: self.__run_hooks,
                    STATE_COMMIT: self.__commit,
                    STATE_RESTORE: self.__restore,
                }

        def __str__(self):
                return "{0} {1} -> {2} ({3})".format(self.entry.name,
                    self.entry.from_version, self.entry.to_version,
                    self.state)

        @property
        def name(self):
                return self.entry.name

        @property
        def is_root(self):
                """True if the package was named explicitly by the request."""
                return self.entry.name in self.entry.roots

        def __info(self, msg):
                logger.info(msg)
                self.outcome.info(msg)

        def __warn(self, msg):
                logger.warning(msg)
                self.outcome.warn(msg)

        def __err(self, msg):
                logger.error(msg)
                self.outcome.error(msg)

        def execute(self):
                """Runs the state machine until the package reaches a terminal
                state and returns its PackageOutcome.  Errors raised outside
                of the transaction states are propagated to the caller."""

                while self.state not in TERMINAL_STATES:
                        handler = self.__handlers.get(self.state)
                        assert handler is not None, \
                            "no handler for state {0}".format(self.state)
                        logger.debug("{0}: {1}".format(self.name, self.state))
                        try:
                                self.state = handler()
                        except (apx.ApiException, EnvironmentError) as e:
                                if self.state not in TRANSACTION_STATES:
                                        raise
                                logger.debug("{0}: {1} failed".format(
                                    self.name, self.state), exc_info=True)
                                self.__error = e
                                self.state = STATE_RESTORE
                return self.outcome

        #
        # Evaluation.  Nothing is changed on disk in these states.
        #

        def __evaluate(self):
                entry = self.entry
                if entry.action == pkgdefs.ACTION_UNRESOLVABLE:
                        self.__err(str(apx.DependencyUnresolvable(entry.name,
                            str(entry.reason), names=entry.reason.names)))
                        self.outcome.set_failed()
                        return STATE_UNRESOLVABLE

                self.installed = self.image.get_installed(entry.name)
                if self.installed is None:
                        return STATE_NOT_INSTALLED
                self.outcome.version = self.installed.version
                self.outcome.location = self.installed.path
                return STATE_INSTALLED

        def __evaluate_not_installed(self):
                target = self.entry.to_version
                if self.flags.fail_on_not_installed and self.is_root:
                        self.__err(str(apx.NotInstalledRejected(self.name)))
                        self.outcome.set_failed()
                        return STATE_REJECTED_NOT_INSTALLED

                self.__dest = self.migrator.destination(self.name, target)
                self.__base = self.__dest
                if self.flags.noop:
                        self.__info(_("Would have installed {name} "
                            "v{ver}.").format(name=self.name, ver=target))
                        self.outcome.pending = target
                        self.outcome.set_inconclusive()
                        return STATE_NOOP
                return STATE_BACKUP

        def __evaluate_installed(self):
                installed = self.installed.version
                target = self.entry.to_version

                if target <= installed:
                        if not self.flags.force:
                                self.__info(_("{name} v{ver} is the latest "
                                    "version available based on your "
                                    "source(s).").format(name=self.name,
                                    ver=installed))
                                self.outcome.set_inconclusive()
                                return STATE_INCONCLUSIVE
                        if target < installed:
                                self.__info(_("{name} v{ver} is newer than "
                                    "the most recent version available "
                                    "({avail}); it cannot be re-applied."
                                    ).format(name=self.name, ver=installed,
                                    avail=target))
                                self.outcome.set_inconclusive()
                                return STATE_INCONCLUSIVE

                if target == installed:
                        # Re-applying a version never migrates it.
                        self.__dest = self.installed.path
                else:
                        self.__dest = self.migrator.destination(self.name,
                            target)
                if os.path.isdir(self.__dest):
                        self.__base = self.__dest
                else:
                        self.__base = self.installed.path

                if self.flags.noop:
                        if target == installed:
                                self.__info(_("Would have reinstalled {name} "
                                    "v{ver}.").format(name=self.name,
                                    ver=installed))
                        else:
                                self.__warn(_("You have {name} v{old} "
                                    "installed. Version {new} is available "
                                    "based on your source(s).").format(
                                    name=self.name, old=installed,
                                    new=target))
                        self.outcome.pending = target
                        self.outcome.set_inconclusive()
                        return STATE_NOOP
                return STATE_BACKUP

        #
        # The transaction.
        #

        def __backup(self):
                """Fetches the new payload, saves the current install
                directory and runs the pre-upgrade hook of the new payload."""

                target = self.entry.to_version
                self.rollback.discard_holding(self.name)
                self.__staging = self.image.staging_dir(self.name)
                self.catalog.fetch_payload(self.name, target, self.__staging)

                if self.installed is not None:
                        self.__snapshot = self.rollback.begin_transaction(
                            self.name, self.__base)

                self.__hook(pkgdefs.HOOK_PRE_UPGRADE, self.__staging)
                return STATE_REPLACE

        def __replace(self):
                """Merges the new payload into the destination directory."""

                report = self.detector.check_tree(self.__base)
                if report.exclusive:
                        raise apx.ExclusiveLockConflict(self.name,
                            os.path.join(self.__base, report.exclusive[0]))

                if self.installed is None:
                        misc.makedirs(os.path.dirname(self.__dest))
                        if not os.path.isdir(self.__dest):
                                self.__created = True
                                misc.makedirs(self.__dest)
                        old_mfst = manifest.Manifest()
                else:
                        try:
                                old_mfst = manifest.Manifest.load(
                                    self.__base) or self.installed.manifest
                        except apx.InvalidMetadataError:
                                old_mfst = self.installed.manifest
                        if self.migrator.prepare(self.__base, self.__dest,
                            seed=not self.flags.allow_multiple_versions):
                                self.__snapshot.track_created(self.__dest)
                        self.__snapshot.mark_dirty()

                shared = frozenset(report.shared)
                if self.__dest != self.__base:
                        # Locks held on the old directory do not affect the
                        # copy being updated.
                        shared = frozenset()
                self.__merge(self.__staging, self.__dest, old_mfst, shared)

                md = self.catalog.get_metadata(self.name)
                self.image.write_manifest(self.__dest, self.name,
                    self.entry.to_version, payload=self.__staging,
                    dependencies=md.dependencies(self.entry.to_version))
                return STATE_HOOKS

        def __merge(self, payload, dest, old_mfst, shared):
                """Updates 'dest' to hold the files of 'payload'.  Files that
                the previous version delivered but the new one does not are
                removed; files that no version delivered are kept."""

                new_mfst = manifest.Manifest.from_tree(payload)
                added, changed, removed = old_mfst.difference(new_mfst)
                logger.debug("{0}: {1:d} added, {2:d} changed, {3:d} "
                    "removed".format(self.name, len(added), len(changed),
                    len(removed)))
                for path in old_mfst.modified_files(dest):
                        logger.debug("{0}: replacing locally modified file "
                            "{1}".format(self.name, path))

                for path in removed:
                        fullpath = os.path.join(dest, path)
                        if os.path.lexists(fullpath):
                                logger.debug("{0}: removing {1}".format(
                                    self.name, path))
                                os.unlink(fullpath)

                for path in new_mfst:
                        src = os.path.join(payload, path)
                        dst = os.path.join(dest, path)
                        misc.makedirs(os.path.dirname(dst))
                        if path in shared:
                                logger.debug("{0}: {1} is in use; replacing "
                                    "it".format(self.name, path))
                        # Unlinking first replaces files that are held open.
                        if os.path.lexists(dst):
                                os.unlink(dst)
                        if os.path.islink(src):
                                os.symlink(os.readlink(src), dst)
                        else:
                                misc.copyfile(src, dst)

        def __hook(self, phase, path):
                res = self.hook_runner.run(phase, self.name,
                    self.entry.to_version, path)
                if not res.success:
                        raise apx.HookExecutionFailure(self.name, phase,
                            output=res.output)
                if res.output:
                        logger.info(res.output)

        def __run_hooks(self):
                self.__hook(pkgdefs.HOOK_POST_UPGRADE, self.__dest)
                return STATE_COMMIT

        def __commit(self):
                target = self.entry.to_version
                if self.installed is not None:
                        self.migrator.finish(self.__base, self.__dest)
                        if not self.rollback.commit(self.__snapshot):
                                logger.warning(_("The backup of {0} could "
                                    "not be removed.").format(self.name))
                misc.rmtree(self.__staging)

                self.outcome.version = target
                self.outcome.location = self.__dest
                self.outcome.set_success()
                if self.installed is None:
                        self.__info(_("{name} v{ver} has been installed "
                            "to {path}.").format(name=self.name, ver=target,
                            path=self.__dest))
                        return STATE_INSTALLED_FRESH

                if target == self.installed.version:
                        self.__info(_("{name} v{ver} has been "
                            "reinstalled.").format(name=self.name,
                            ver=target))
                else:
                        self.__info(_("{name} has been upgraded from v{old} "
                            "to v{new}.").format(name=self.name,
                            old=self.installed.version, new=target))
                return STATE_COMMITTED

        def __restore(self):
                """Undoes the transaction after a failure: the install
                directory is restored from the backup and the new payload is
                moved to the holding directory."""

                e = self.__error
                if isinstance(e, apx.ExclusiveLockConflict):
                        self.__warn(str(e))
                else:
                        self.__err(str(e))

                staging = self.__staging
                if staging and not os.path.isdir(staging):
                        staging = None
                try:
                        if self.__snapshot is not None:
                                self.rollback.restore(self.__snapshot,
                                    failed_payload=staging)
                        else:
                                if self.__created:
                                        misc.rmtree(self.__dest)
                                if staging:
                                        self.rollback.hold(self.name, staging)
                except (apx.ApiException, EnvironmentError) as re:
                        logger.debug("{0}: restore failed".format(self.name),
                            exc_info=True)
                        self.__err(_("Unable to restore {name}: {err}"
                            ).format(name=self.name, err=re))

                if self.installed is not None:
                        self.outcome.version = self.installed.version
                        self.outcome.location = self.installed.path
                else:
                        self.outcome.version = None
                self.outcome.set_failed()
                return STATE_RESTORED
