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

"""Miscellaneous filesystem and formatting helpers shared by the upgrade
engine."""

import calendar
import errno
import hashlib
import os
import shutil
import time
from types import MappingProxyType

from stat import S_IMODE, S_ISDIR, S_ISLNK, S_ISREG, S_IRWXU, S_IRGRP, \
    S_IXGRP, S_IROTH, S_IXOTH, S_IWUSR, S_IRUSR

import pkgup.client.api_errors as api_errors

# EmptyI and EmptyDict for argument defaults
EmptyI = tuple()
EmptyDict = MappingProxyType({})

PKG_FILE_BUFSIZ = 128 * 1024
PKG_FILE_MODE = S_IWUSR | S_IRUSR | S_IRGRP | S_IROTH
PKG_DIR_MODE = (S_IRWXU | S_IRGRP | S_IXGRP | S_IROTH | S_IXOTH)


def time_to_timestamp(t):
        """convert seconds since epoch to %Y%m%dT%H%M%SZ format"""
        return time.strftime("%Y%m%dT%H%M%SZ", time.gmtime(t))

def timestamp_to_time(ts):
        """convert %Y%m%dT%H%M%SZ format to seconds since epoch"""
        return calendar.timegm(time.strptime(ts, "%Y%m%dT%H%M%SZ"))

def get_file_digest(path):
        """Returns the hex sha256 digest of the file at 'path'."""

        hash_func = hashlib.sha256()
        with open(path, "rb") as f:
                while True:
                        data = f.read(PKG_FILE_BUFSIZ)
                        if not data:
                                break
                        hash_func.update(data)
        return hash_func.hexdigest()

def copyfile(src_path, dst_path):
        """copy a file, preserving attributes, ownership, etc. where possible"""
        fs = os.lstat(src_path)
        shutil.copy2(src_path, dst_path)
        try:
                os.chown(dst_path, fs.st_uid, fs.st_gid)
        except OSError as e:
                if e.errno != errno.EPERM:
                        raise

def copytree(src, dst):
        """Rewrite of shutil.copytree() that re-creates symlinks rather than
        copying the data behind them and keeps the modes and times of the
        copied directories.  Errors are re-raised as ApiExceptions where
        possible."""

        try:
                os.makedirs(dst, PKG_DIR_MODE)
                src_stat = os.stat(src)
                for name in sorted(os.listdir(src)):
                        s_path = os.path.join(src, name)
                        d_path = os.path.join(dst, name)
                        s = os.lstat(s_path)
                        if S_ISDIR(s.st_mode):
                                copytree(s_path, d_path)
                        elif S_ISREG(s.st_mode):
                                copyfile(s_path, d_path)
                        elif S_ISLNK(s.st_mode):
                                os.symlink(os.readlink(s_path), d_path)
                        # Other special files are not part of a payload.
                os.chmod(dst, S_IMODE(src_stat.st_mode))
                os.utime(dst, (src_stat.st_atime, src_stat.st_mtime))
        except EnvironmentError as e:
                # Access to protected member; pylint: disable=W0212
                raise api_errors._convert_error(e)

def move(src, dst):
        """Rewrite of shutil.move() that uses our copy of copytree()."""

        # If dst is a directory, then we try to move src into it.
        if os.path.isdir(dst):
                dst = os.path.join(dst,
                    os.path.basename(src).rstrip(os.path.sep))

        try:
                os.rename(src, dst)
        except EnvironmentError as e:
                if e.errno != errno.EXDEV:
                        # Access to protected member; pylint: disable=W0212
                        raise api_errors._convert_error(e)

                s = os.lstat(src)
                if S_ISDIR(s.st_mode):
                        copytree(src, dst)
                        rmtree(src)
                else:
                        copyfile(src, dst)
                        os.unlink(src)

def rmtree(path):
        """Recursively removes 'path' if it exists, re-raising any unexpected
        exceptions as ApiExceptions."""

        try:
                shutil.rmtree(path)
        except EnvironmentError as e:
                if e.errno == errno.ENOENT:
                        return
                # Access to protected member; pylint: disable=W0212
                raise api_errors._convert_error(e)

def makedirs(pathname):
        """Create a directory at the specified location if it does not
        already exist (including any parent directories) re-raising any
        unexpected exceptions as ApiExceptions.
        """

        try:
                os.makedirs(pathname, PKG_DIR_MODE)
        except EnvironmentError as e:
                if e.filename == pathname and (e.errno == errno.EEXIST or
                    os.path.exists(e.filename)):
                        return
                elif e.errno == errno.EACCES:
                        raise api_errors.PermissionsException(
                            e.filename)
                elif e.errno == errno.EROFS:
                        raise api_errors.ReadOnlyFileSystemException(
                            e.filename)
                elif e.errno != errno.EEXIST or e.filename != pathname:
                        raise

def walk_files(root):
        """Generator that yields the path, relative to 'root', of every
        regular file and symlink below 'root' in sorted order."""

        for dirpath, dirnames, filenames in os.walk(root):
                # Symlinks to directories are yielded, not descended into.
                links = [
                    d for d in dirnames
                    if os.path.islink(os.path.join(dirpath, d))
                ]
                dirnames[:] = sorted(d for d in dirnames if d not in links)
                for fname in sorted(filenames + links):
                        yield os.path.relpath(os.path.join(dirpath, fname),
                            root)


class DummyLock(object):
        """This has the same external interface as threading.Lock,
        but performs no locking.  This is a placeholder object for situations
        where we want to be able to do locking, but don't always need a
        lock object present."""
        # Missing docstring; pylint: disable=C0111

        def __init__(self):
                self.held = False

        def acquire(self, blocking=1):
                # Unused argument; pylint: disable=W0613
                self.held = True
                return True

        def release(self):
                self.held = False

        def __enter__(self):
                self.acquire()
                return self

        def __exit__(self, exc_type, exc_value, tb):
                self.release()

        @property
        def locked(self):
                return self.held
