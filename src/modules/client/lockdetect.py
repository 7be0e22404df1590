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

"""Detection of files that another process holds open in a way that would
obstruct their replacement.

Advisory locks are probed with flock(2).  A file on which an exclusive lock
can be taken is not obstructed.  A file on which only a shared lock can be
taken is held by another process that still permits reading and removal of
the file; it can be replaced by unlinking and recreating it.  A file on which
no lock at all can be taken is held exclusively and cannot be replaced."""

import errno
import fcntl
import os
import stat
from collections import namedtuple

import pkgup.client.api_errors as api_errors
import pkgup.misc as misc
from pkgup.client import global_settings

logger = global_settings.logger

LOCK_NONE = "none"
LOCK_SHARED = "shared"
LOCK_EXCLUSIVE = "exclusive"

# The result of checking a directory tree; each member is a sorted list of
# paths relative to the root of the tree.
LockReport = namedtuple("LockReport", ["shared", "exclusive"])


class LockDetector(object):
        """A class that classifies the obstructions, if any, which prevent
        files below an install root from being replaced."""

        def __try_lock(self, fd, lock_type):
                """Returns True if the lock could be taken (and then drops it),
                False if it is contended."""

                try:
                        fcntl.flock(fd, lock_type | fcntl.LOCK_NB)
                except (IOError, OSError) as e:
                        if e.errno not in (errno.EAGAIN, errno.EACCES,
                            errno.EWOULDBLOCK):
                                raise
                        return False
                fcntl.flock(fd, fcntl.LOCK_UN)
                return True

        def probe(self, path):
                """Returns LOCK_NONE, LOCK_SHARED, or LOCK_EXCLUSIVE for the
                file at 'path'.  Anything other than a regular file is never
                obstructed."""

                try:
                        st = os.lstat(path)
                except OSError as e:
                        if e.errno == errno.ENOENT:
                                return LOCK_NONE
                        raise api_errors._convert_error(e)
                if not stat.S_ISREG(st.st_mode):
                        return LOCK_NONE

                try:
                        fd = os.open(path, os.O_RDONLY | os.O_NOFOLLOW)
                except OSError as e:
                        if e.errno in (errno.EACCES, errno.EPERM,
                            errno.EBUSY, errno.ETXTBSY):
                                # The file cannot even be opened for reading.
                                return LOCK_EXCLUSIVE
                        if e.errno in (errno.ENOENT, errno.ELOOP):
                                return LOCK_NONE
                        raise api_errors._convert_error(e)

                try:
                        if self.__try_lock(fd, fcntl.LOCK_EX):
                                return LOCK_NONE
                        if self.__try_lock(fd, fcntl.LOCK_SH):
                                return LOCK_SHARED
                        return LOCK_EXCLUSIVE
                finally:
                        os.close(fd)

        def check_tree(self, root):
                """Probes every file below 'root' and returns a LockReport of
                the obstructed ones."""

                shared = []
                exclusive = []
                if not os.path.isdir(root):
                        return LockReport(shared, exclusive)

                for rel in misc.walk_files(root):
                        state = self.probe(os.path.join(root, rel))
                        if state == LOCK_SHARED:
                                logger.debug("{0} is held open by another "
                                    "process (shared)".format(rel))
                                shared.append(rel)
                        elif state == LOCK_EXCLUSIVE:
                                logger.debug("{0} is held open by another "
                                    "process (exclusive)".format(rel))
                                exclusive.append(rel)
                return LockReport(shared, exclusive)
