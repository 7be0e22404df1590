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

"""Process-wide state of the upgrade engine: logging and client identity.

Everything logs through the "pkgup" logger.  By default, records up to
INFO go to stdout and records of WARNING and above go to stderr; DEBUG
records are shown only when verbose output is enabled, either through the
client or by setting PKGUP_DEBUG in the environment."""

import logging
import os
import sys

__all__ = ["global_settings"]

LOGGER_NAME = "pkgup"


class _MaxLevelFilter(logging.Filter):
        """Passes only records at or below 'max_level'."""

        def __init__(self, max_level):
                logging.Filter.__init__(self)
                self.max_level = max_level

        def filter(self, record):
                return record.levelno <= self.max_level


class _StreamHandler(logging.StreamHandler):

        def handleError(self, record):
                # A closed stdout or stderr must not abort an upgrade.
                return


class GlobalSettings(object):

        def __init__(self):
                self.__handlers = {"info": None, "error": None}
                self.__verbose = bool(os.environ.get("PKGUP_DEBUG"))

                self.client_name = None
                self.client_args = sys.argv[:]
                # Used to name staging directories and history records.
                self.client_runid = os.getpid()

                self.reset_logging()

        def __swap_handler(self, kind, handler):
                old = self.__handlers[kind]
                if old:
                        self.logger.removeHandler(old)
                self.__handlers[kind] = handler
                if handler:
                        self.logger.addHandler(handler)

        @property
        def logger(self):
                return logging.getLogger(LOGGER_NAME)

        @property
        def info_log_handler(self):
                return self.__handlers["info"]

        @info_log_handler.setter
        def info_log_handler(self, handler):
                self.__swap_handler("info", handler)

        @property
        def error_log_handler(self):
                return self.__handlers["error"]

        @error_log_handler.setter
        def error_log_handler(self, handler):
                self.__swap_handler("error", handler)

        @property
        def verbose(self):
                return self.__verbose

        @verbose.setter
        def verbose(self, val):
                self.__verbose = val
                if self.info_log_handler:
                        self.info_log_handler.setLevel(
                            val and logging.DEBUG or logging.INFO)

        def reset_logging(self):
                """Installs the default stdout and stderr handlers in place of
                whatever handlers are currently set."""

                logger = self.logger
                logger.setLevel(logging.DEBUG)
                logger.propagate = False

                fmt = logging.Formatter()

                info_h = _StreamHandler(sys.stdout)
                info_h.setLevel(self.verbose and logging.DEBUG or
                    logging.INFO)
                info_h.addFilter(_MaxLevelFilter(logging.INFO))
                info_h.setFormatter(fmt)

                error_h = _StreamHandler(sys.stderr)
                error_h.setLevel(logging.WARNING)
                error_h.setFormatter(fmt)

                self.info_log_handler = info_h
                self.error_log_handler = error_h


global_settings = GlobalSettings()
