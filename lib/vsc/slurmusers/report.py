#
# Copyright 2023 Ghent University
#
# This file is part of vsc-slurm-users,
# originally created by the HPC team of Ghent University (http://ugent.be/hpc/en),
# with support of Ghent University (http://ugent.be/hpc),
# the Flemish Supercomputer Centre (VSC) (https://www.vscentrum.be),
# the Flemish Research Foundation (FWO) (http://www.fwo.be/en)
# and the Department of Economy, Science and Innovation (EWI) (http://www.ewi-vlaanderen.be/en).
#
# All rights reserved.
#
"""
Operator diagnostics.

The sync prints its findings on stdout, interleaved with the generated commands. Diagnostic lines
are prefixed with ### so they can be filtered out before the commands are fed to a shell, e.g.

    ### NOTICE: user alice is in account(s) labb instead of laba, setting the default account
    ### WARNING: policy file /etc/sync_slurm_users.conf not found, using the defaults only
    ### ERROR: user bob has gid 4242, which does not map to a known group, skipping

The diagnostics are regular log records on a dedicated logger, so they can also be captured
by tests or any other handler.
"""
import logging
import sys

REPORT_LOGGER_NAME = "vsc.slurmusers.report"
REPORT_PREFIX = "###"

REPORT_LEVEL_NAMES = {
    logging.INFO: "NOTICE",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
}

_reporter = logging.getLogger(REPORT_LOGGER_NAME)


def notice(msg, *args):
    """Informational finding, nothing is wrong"""
    _reporter.info(msg, *args)


def warning(msg, *args):
    _reporter.warning(msg, *args)


def error(msg, *args):
    _reporter.error(msg, *args)


class ReportFormatter(logging.Formatter):
    """Render a record as a ### prefixed diagnostic line."""

    def format(self, record):
        level = REPORT_LEVEL_NAMES.get(record.levelno, record.levelname)
        return "{0} {1}: {2}".format(REPORT_PREFIX, level, record.getMessage())


def setup_report_output(stream=None):
    """Send the diagnostics to stdout (or the given stream) instead of the regular log.

    @returns: the installed handler
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(ReportFormatter())

    _reporter.addHandler(handler)
    _reporter.setLevel(logging.INFO)
    _reporter.propagate = False

    return handler
