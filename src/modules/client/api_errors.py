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

import errno

# EmptyI for argument defaults; can't import from misc due to circular
# dependency.
EmptyI = tuple()

class ApiException(Exception):
        def __init__(self, *args):
                Exception.__init__(self)
                self.__verbose_info = []

        def add_verbose_info(self, info):
                self.__verbose_info.extend(info)

        @property
        def verbose_info(self):
                return self.__verbose_info


class HistoryException(ApiException):
        """Private base exception class for all History exceptions."""

        def __init__(self, *args):
                ApiException.__init__(self, *args)
                self.error = args[0]

        def __str__(self):
                return str(self.error)


class HistoryLoadException(HistoryException):
        """Used to indicate that an unexpected error occurred while loading
        History operation information.

        The first argument should be an exception object related to the
        error encountered.
        """
        pass


class HistoryStoreException(HistoryException):
        """Used to indicate that an unexpected error occurred while storing
        History operation information.

        The first argument should be an exception object related to the
        error encountered.
        """
        pass


class PermissionsException(ApiException):
        def __init__(self, path):
                ApiException.__init__(self)
                self.path = path

        def __str__(self):
                if self.path:
                        return _("Could not operate on {0}\nbecause of "
                            "insufficient permissions. Please try the "
                            "command again as a privileged user.").format(
                            self.path)
                else:
                        return _("""
Could not complete the operation because of insufficient permissions.
Please try the command again as a privileged user.
""")

class FileInUseException(PermissionsException):
        def __init__(self, path):
                PermissionsException.__init__(self, path)
                assert path

        def __str__(self):
                return _("Could not operate on {0}\nbecause the file is "
                    "in use. Please stop using the file and try the\n"
                    "operation again.").format(self.path)


class ReadOnlyFileSystemException(PermissionsException):
        """Used to indicate that the operation was attempted on a
        read-only filesystem"""

        def __init__(self, path):
                ApiException.__init__(self)
                self.path = path

        def __str__(self):
                if self.path:
                        return _("Could not complete the operation on {0}: "
                            "read-only filesystem.").format(self.path)
                return _("Could not complete the operation: read-only "
                        "filesystem.")


class InvalidConfigFile(ApiException):
        """Used to indicate that a configuration file is invalid
        or broken"""

        def __init__(self, path):
                ApiException.__init__(self)
                self.path = path

        def __str__(self):
                return _("Cannot parse configuration file "
                    "'{path}'.").format(path=self.path)


class InvalidMetadataError(ApiException):
        """Used to indicate that the metadata published by a package source
        for a package could not be parsed or did not match the expected
        structure."""

        def __init__(self, path, detail=None):
                ApiException.__init__(self)
                self.path = path
                self.detail = detail

        def __str__(self):
                if self.detail:
                        return _("Invalid package metadata in '{path}': "
                            "{detail}").format(**self.__dict__)
                return _("Invalid package metadata in '{path}'.").format(
                    path=self.path)


class ManifestInputRejected(ApiException):
        """Used to indicate that the path to a package list manifest was
        given to an upgrade operation.  Only install operations accept
        package list manifests; this aborts the whole run."""

        def __init__(self, path):
                ApiException.__init__(self)
                self.path = path

        def __str__(self):
                return _("Package list manifests such as '{0}' are only "
                    "supported by install operations; list the packages "
                    "to upgrade explicitly.").format(self.path)


class InvalidPackageSpec(ApiException):
        """Used to indicate that a requested package name or version
        constraint could not be parsed."""

        def __init__(self, spec, detail=None):
                ApiException.__init__(self)
                self.spec = spec
                self.detail = detail

        def __str__(self):
                if self.detail:
                        return _("'{spec}' is not a valid package "
                            "specification: {detail}").format(**self.__dict__)
                return _("'{0}' is not a valid package "
                    "specification.").format(self.spec)


class UpgradeException(ApiException):
        """Base class for the errors that end the upgrade of a single
        package.  These are recorded on the package's outcome and never
        abort the run."""

        def __init__(self, name):
                ApiException.__init__(self)
                self.name = name


class PackageNotFound(UpgradeException):
        """The package is not published by any configured source."""

        def __str__(self):
                return _("{0} not found. The package was not found with "
                    "the source(s) listed (package not found).").format(
                    self.name)


class NotInstalledRejected(UpgradeException):
        """The package is not installed and the run was told not to install
        missing packages."""

        def __str__(self):
                return _("{0} is not installed. Cannot upgrade a "
                    "non-existent package.").format(self.name)


class DependencyUnresolvable(UpgradeException):
        """No version of a package satisfies the active constraints of the
        plan, or the package depends on such a package."""

        def __init__(self, name, reason, names=EmptyI):
                UpgradeException.__init__(self, name)
                self.reason = reason
                self.names = names

        def __str__(self):
                return _("Unable to resolve dependencies for {name}: "
                    "{reason}").format(name=self.name, reason=self.reason)


class ExclusiveLockConflict(UpgradeException):
        """A file in the package's install directory is held open by another
        process without permitting concurrent access."""

        def __init__(self, name, path):
                UpgradeException.__init__(self, name)
                self.path = path

        def __str__(self):
                return _("{name} could not be upgraded because '{path}' is "
                    "locked by another process. The previous version has "
                    "been restored.").format(name=self.name, path=self.path)


class HookExecutionFailure(UpgradeException):
        """A pre- or post-upgrade hook reported failure."""

        def __init__(self, name, phase, output=None):
                UpgradeException.__init__(self, name)
                self.phase = phase
                self.output = output

        def __str__(self):
                if self.output:
                        return _("The {phase} hook of {name} failed:\n"
                            "{output}").format(**self.__dict__)
                return _("The {phase} hook of {name} failed.").format(
                    phase=self.phase, name=self.name)


class PayloadUnavailable(UpgradeException):
        """The payload of the chosen version could not be retrieved from the
        source that published it."""

        def __init__(self, name, version, detail=None):
                UpgradeException.__init__(self, name)
                self.version = version
                self.detail = detail

        def __str__(self):
                if self.detail:
                        return _("Unable to retrieve {name} {version}: "
                            "{detail}").format(**self.__dict__)
                return _("Unable to retrieve {name} {version}.").format(
                    name=self.name, version=self.version)


class BackupError(UpgradeException):
        """The install directory of a package could not be backed up, so the
        package was left untouched."""

        def __init__(self, name, path, error=None):
                UpgradeException.__init__(self, name)
                self.path = path
                self.error = error

        def __str__(self):
                return _("Unable to back up {name} to '{path}': "
                    "{error}").format(**self.__dict__)


def _convert_error(e, ignored_errors=EmptyI):
        """Converts the provided exception into an ApiException equivalent if
        possible.  Returns a new exception object if converted or the original
        if not.

        'ignored_errors' is an optional list of errno values for which None
        should be returned.
        """

        if not hasattr(e, "errno"):
                return e
        if e.errno in ignored_errors:
                return None
        if e.errno in (errno.EACCES, errno.EPERM):
                return PermissionsException(e.filename)
        if e.errno == errno.EROFS:
                return ReadOnlyFileSystemException(e.filename)
        if e.errno in (errno.EBUSY, errno.ETXTBSY) and e.filename:
                return FileInUseException(e.filename)
        return e
