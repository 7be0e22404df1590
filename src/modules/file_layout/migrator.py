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

"""The purpose of the LayoutMigrator class is to decide where the new version
of a package is placed below the library directory and to move packages
from the legacy, versioned layout to the canonical layout.

Only packages whose version actually changes in a run are migrated.  When a
package moves to a new version the legacy directory holding the old version
is removed and the canonical directory is created, seeded with the old
contents so that files added by the user survive, and then populated with
the new payload.  A package whose version is not changing is never touched,
even when it still lives in a legacy directory and its dependencies have
been migrated; that mixed state is the expected result and is only resolved
once the package itself is upgraded.

When multiple versions are allowed, no migration takes place: the new
version is written to its own legacy directory next to the old one."""

import os

import pkgup.client.api_errors as apx
import pkgup.file_layout.layout as layout
import pkgup.misc as misc
from pkgup.client import global_settings

logger = global_settings.logger


class LayoutMigrationError(apx.ApiException):
        """This exception is raised when the directory for the new version of
        a package cannot be prepared."""

        def __init__(self, src, dest, error=None):
                apx.ApiException.__init__(self)
                self.src = src
                self.dest = dest
                self.error = error

        def __str__(self):
                return _("Unable to move {src} to {dest}: {error}").format(
                    **self.__dict__)


class LayoutMigrator(object):
        """The LayoutMigrator class places packages within the library
        directory according to a preferred layout while recognizing
        directories created by any of the known layouts."""

        def __init__(self, lib_dir, allow_multiple_versions=False,
            layouts=None):
                """Initialize the LayoutMigrator object.

                The "lib_dir" parameter is a path to the library directory.

                The "allow_multiple_versions" parameter determines whether
                the versioned layout is preferred, which disables migration.
                """

                if not lib_dir:
                        raise ValueError("lib_dir must not be none")
                self.lib_dir = lib_dir
                self.allow_multiple_versions = allow_multiple_versions
                if layouts is not None:
                        self.layouts = layouts
                else:
                        self.layouts = layout.get_default_layouts()
                if allow_multiple_versions:
                        self.preferred = layout.LegacyLayout()
                else:
                        self.preferred = layout.get_preferred_layout()

        def destination(self, name, version):
                """Returns the path the given version of the package should be
                installed to."""

                return os.path.join(self.lib_dir,
                    self.preferred.lookup(name, version))

        def classify(self, path):
                """Returns a tuple of (layout, name, version string or None)
                for the directory at 'path' using the first layout that
                recognizes it."""

                for l in self.layouts:
                        res = l.path_to_package(path)
                        if res is not None:
                                return (l,) + tuple(res)
                return None, None, None

        def needs_migration(self, src, dest):
                """Returns whether installing to 'dest' means the package
                directory 'src' has to be retired afterwards."""

                return not self.allow_multiple_versions and \
                    os.path.normpath(src) != os.path.normpath(dest)

        def prepare(self, src, dest, seed=True):
                """Creates the directory 'dest' for a new version of the
                package currently installed at 'src'.  If 'seed' is True, the
                contents of 'src' are copied first.  Returns True if 'dest'
                was created."""

                if os.path.normpath(src) == os.path.normpath(dest) or \
                    os.path.isdir(dest):
                        return False

                try:
                        if seed and src and os.path.isdir(src):
                                misc.copytree(src, dest)
                        else:
                                misc.makedirs(dest)
                except (apx.ApiException, EnvironmentError) as e:
                        raise LayoutMigrationError(src, dest, error=e)
                logger.debug("prepared {0} from {1}".format(dest, src))
                return True

        def finish(self, src, dest):
                """Removes the directory 'src' once the package has been fully
                installed to 'dest', if migration is required.  Returns
                True if 'src' was removed."""

                if not src or not self.needs_migration(src, dest):
                        return False
                if not os.path.isdir(src):
                        return False
                misc.rmtree(src)
                logger.debug("migrated {0} to {1}".format(src, dest))
                return True
