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

"""Backup and restore of a single package's install directory.

A transaction begins by copying the install directory of the package to the
backup directory, keyed by package name.  Committing the transaction removes
the backup; restoring it puts the backup contents back in place and leaves
the backup where it is so that the failure can be inspected.  The payload
that failed to apply is kept in the holding directory."""

import os

import pkgup.client.api_errors as apx
import pkgup.misc as misc
from pkgup.client import global_settings

logger = global_settings.logger


class BackupSnapshot(object):
        """The saved contents of one package's install directory for the
        duration of one upgrade transaction."""

        def __init__(self, name, install_path, backup_path):
                self.name = name
                self.install_path = install_path
                self.backup_path = backup_path
                # Directories created during the transaction, removed on
                # restore.
                self.created = []
                # Whether the install directory has been modified.
                self.dirty = False

        def __str__(self):
                return "{0}: {1} -> {2}".format(self.name, self.install_path,
                    self.backup_path)

        def track_created(self, path):
                """Records that 'path' did not exist before the transaction."""
                self.created.append(path)

        def mark_dirty(self):
                """Records that the install directory is about to change."""
                self.dirty = True


class RollbackManager(object):
        """The RollbackManager owns the backup and holding directories of an
        install root and at most one live snapshot per package."""

        def __init__(self, backup_dir, holding_dir):
                self.backup_dir = backup_dir
                self.holding_dir = holding_dir
                self.__live = {}

        def backup_path(self, name):
                """Returns the path of the backup for the named package."""
                return os.path.join(self.backup_dir, name)

        def holding_path(self, name):
                """Returns the path of the holding area for the named
                package."""
                return os.path.join(self.holding_dir, name)

        def get_snapshot(self, name):
                """Returns the live snapshot for the named package or None."""
                return self.__live.get(name)

        def begin_transaction(self, name, install_path):
                """Copies the install directory of the named package to the
                backup directory, replacing any stale backup, and returns the
                BackupSnapshot.  Raises BackupError if the copy could not be
                made; the install directory is untouched in that case."""

                assert name not in self.__live, \
                    "transaction already in progress for {0}".format(name)

                backup_path = self.backup_path(name)
                try:
                        if os.path.exists(backup_path):
                                logger.debug("replacing stale backup "
                                    "{0}".format(backup_path))
                                misc.rmtree(backup_path)
                        misc.makedirs(self.backup_dir)
                        misc.copytree(install_path, backup_path)
                except (apx.ApiException, EnvironmentError) as e:
                        raise apx.BackupError(name, backup_path, error=e)

                snapshot = BackupSnapshot(name, install_path, backup_path)
                self.__live[name] = snapshot
                logger.debug("backed up {0}".format(snapshot))
                return snapshot

        def commit(self, snapshot):
                """Ends the transaction by removing the backup.  A failure to
                remove it is logged and leaves the backup behind; the
                transaction is still committed.  Returns True if the backup
                was removed."""

                self.__live.pop(snapshot.name, None)
                try:
                        misc.rmtree(snapshot.backup_path)
                except (apx.ApiException, EnvironmentError) as e:
                        logger.warning(_("Unable to remove the backup of "
                            "{name} at {path}: {err}\nThe upgrade of {name} "
                            "was not affected; the backup may be removed "
                            "manually.").format(name=snapshot.name,
                            path=snapshot.backup_path, err=e))
                        return False
                return True

        def restore(self, snapshot, failed_payload=None):
                """Ends the transaction by replacing the install directory
                with the backup contents.  The backup is left in place.  If
                'failed_payload' is provided, it is moved to the holding
                directory for the package."""

                self.__live.pop(snapshot.name, None)

                for path in reversed(snapshot.created):
                        misc.rmtree(path)

                if snapshot.dirty or \
                    not os.path.exists(snapshot.install_path):
                        misc.rmtree(snapshot.install_path)
                        misc.copytree(snapshot.backup_path,
                            snapshot.install_path)

                if failed_payload:
                        self.hold(snapshot.name, failed_payload)

                logger.warning(_("{name} has been restored from the backup at "
                    "{path}.").format(name=snapshot.name,
                    path=snapshot.backup_path))

        def hold(self, name, payload):
                """Moves 'payload' into the holding directory for the named
                package, replacing anything held there before.  Returns the
                new location."""

                dest = self.holding_path(name)
                misc.rmtree(dest)
                misc.makedirs(self.holding_dir)
                misc.move(payload, dest)
                return dest

        def discard_holding(self, name):
                """Removes any payload held for the named package."""
                misc.rmtree(self.holding_path(name))
