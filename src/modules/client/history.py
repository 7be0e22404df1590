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
import os
import shutil
import time

import simplejson as json

import pkgup.client.api_errors as apx
import pkgup.misc as misc
from pkgup.client import global_settings, pkgdefs

# Constants for the (outcome, reason) combination for operation result
# and reason.  The first field, 'outcome' should be a single word to allow easy
# extraction from the history records but 'reason' may be a phrase.
# Indicates that the user canceled the operation.
RESULT_CANCELED = ["Canceled", "None"]
# Indicates that the operation had no work to perform or didn't need to make
# any changes to the image.
RESULT_NOTHING_TO_DO = ["Ignored", "Nothing to do"]
# Indicates that the operation succeeded.
RESULT_SUCCEEDED = ["Succeeded", "None"]
# Indicates that some, but not all, of the packages were upgraded.
RESULT_PARTIAL = ["Partial", "Some packages failed"]
# Indicates that the user or client provided bad information which resulted in
# operation failure.
RESULT_FAILED_BAD_REQUEST = ["Failed", "Bad Request"]
# Indicates that the operation failed due to a configuration error.
RESULT_FAILED_CONFIGURATION = ["Failed", "Configuration"]
# Indicates that the operation failed due to package constraints.
RESULT_FAILED_CONSTRAINED = ["Failed", "Constrained"]
# Indicates that there was a problem reading, writing, or accessing a file.
RESULT_FAILED_STORAGE = ["Failed", "Storage"]
# Indicates that the operation failed for an unknown reason.
RESULT_FAILED_UNKNOWN = ["Failed", "Unknown"]

# Cross-reference table for errors and results.  Entries should be ordered
# most-specific to least-specific.
error_results = [
    (apx.ManifestInputRejected, RESULT_FAILED_BAD_REQUEST),
    (apx.InvalidPackageSpec, RESULT_FAILED_BAD_REQUEST),
    (apx.InvalidConfigFile, RESULT_FAILED_CONFIGURATION),
    (apx.InvalidMetadataError, RESULT_FAILED_CONFIGURATION),
    (apx.DependencyUnresolvable, RESULT_FAILED_CONSTRAINED),
    (apx.PermissionsException, RESULT_FAILED_STORAGE),
    (EnvironmentError, RESULT_FAILED_STORAGE),
    (KeyboardInterrupt, RESULT_CANCELED),
]

# Results for the exit codes of a completed run.
exit_results = {
    pkgdefs.EXIT_OK: RESULT_SUCCEEDED,
    pkgdefs.EXIT_NOP: RESULT_NOTHING_TO_DO,
    pkgdefs.EXIT_PARTIAL: RESULT_PARTIAL,
    pkgdefs.EXIT_OOPS: RESULT_FAILED_UNKNOWN,
}


def result_for_error(error):
        """Returns the RESULT_* value for the exception 'error'."""

        for cls, result in error_results:
                if isinstance(error, cls):
                        return result
        return RESULT_FAILED_UNKNOWN


class History(object):
        """A History object records one entry per operation performed on an
        install root in <root>/.pkgup/history.  Each entry is a JSON document
        named {operation_start_time}-{sequence}.json holding the operation's
        name, arguments, start and end times, result and, for upgrade runs,
        the outcome of every package."""

        def __init__(self, root):
                self.root = root
                self.path = os.path.join(root, pkgdefs.META_DIR, "history")
                self.__operation = None

        @property
        def operation_name(self):
                if self.__operation is None:
                        return None
                return self.__operation["operation"]

        def log_operation_start(self, name, args=misc.EmptyI):
                """Marks the start of the operation 'name'."""

                assert self.__operation is None, \
                    "operation {0} already in progress".format(
                    self.operation_name)
                self.__operation = {
                    "operation": name,
                    "client": global_settings.client_name,
                    "args": list(args),
                    "pid": global_settings.client_runid,
                    "start_time": misc.time_to_timestamp(time.time()),
                    "end_time": None,
                    "result": None,
                    "errors": [],
                    "summary": None,
                }

        def log_operation_end(self, summary=None, error=None, result=None):
                """Marks the end of the current operation and writes its
                record.  The result is taken from 'result' if provided, else
                from 'error', else from the exit code of the
                results.RunSummary 'summary'."""

                op = self.__operation
                assert op is not None, "no operation in progress"

                if result is None:
                        if error is not None:
                                result = result_for_error(error)
                        elif summary is not None:
                                result = exit_results[summary.exit_code()]
                        else:
                                result = RESULT_SUCCEEDED
                if error is not None:
                        op["errors"].append(str(error))
                if summary is not None:
                        op["summary"] = summary.getstate()
                op["result"] = list(result)
                op["end_time"] = misc.time_to_timestamp(time.time())
                try:
                        self.__save()
                finally:
                        self.__operation = None

        def __save(self):
                """Serializes the current operation and writes it to a file in
                self.path/{operation_start_time}-{sequence}.json."""

                try:
                        misc.makedirs(self.path)
                except apx.PermissionsException as e:
                        # Without the directory there is nowhere to record
                        # the operation; it is not critical to the upgrade.
                        global_settings.logger.debug("unable to record "
                            "history: {0}".format(e))
                        return

                # Several operations may start within the same second.
                start = self.__operation["start_time"]
                for i in range(1, 100):
                        pathname = os.path.join(self.path,
                            "{0}-{1:>02d}.json".format(start, i))
                        try:
                                fd = os.open(pathname,
                                    os.O_CREAT|os.O_EXCL|os.O_WRONLY,
                                    misc.PKG_FILE_MODE)
                        except EnvironmentError as e:
                                if e.errno == errno.EEXIST:
                                        continue
                                if e.errno in (errno.EROFS, errno.EACCES):
                                        return
                                raise apx.HistoryStoreException(e)
                        try:
                                with os.fdopen(fd, "w") as f:
                                        json.dump(self.__operation, f,
                                            sort_keys=True, indent=2)
                        except (EnvironmentError, TypeError, ValueError) as e:
                                raise apx.HistoryStoreException(e)
                        return
                raise apx.HistoryStoreException(_("too many history records "
                    "for {0}").format(start))

        def entries(self):
                """Returns the list of recorded operations, oldest first."""

                try:
                        names = sorted(
                            n for n in os.listdir(self.path)
                            if n.endswith(".json")
                        )
                except EnvironmentError as e:
                        if e.errno == errno.ENOENT:
                                return []
                        raise apx.HistoryLoadException(e)

                entries = []
                for name in names:
                        pathname = os.path.join(self.path, name)
                        try:
                                with open(pathname, "r") as f:
                                        entry = json.load(f)
                        except (EnvironmentError, ValueError) as e:
                                raise apx.HistoryLoadException(e)
                        entry["pathname"] = pathname
                        entries.append(entry)
                return entries

        def purge(self):
                """Removes all history information."""

                try:
                        shutil.rmtree(self.path)
                except EnvironmentError as e:
                        if e.errno != errno.ENOENT:
                                raise apx.HistoryStoreException(e)
