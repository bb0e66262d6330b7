#!/usr/bin/env python
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
This script synchronises the UNIX users and their limits to the Slurm database.

It prints the sacctmgr commands needed to bring the associations in line with the passwd/group
databases and the policy file. Nothing is executed: review the output or feed it to a shell, e.g.

    sync_slurm_users.py | grep -v '^###' | sh

The script must result in an idempotent execution, to ensure nothing breaks.
"""
import logging
import sys

from vsc.slurmusers.identity import GETENT, DEFAULT_MIN_UID, GetentIdentitySource, get_identity_info
from vsc.slurmusers.policy import DEFAULT_FAIRSHARE, DEFAULT_POLICY_FILE, default_settings, read_policy
from vsc.slurmusers.report import setup_report_output
from vsc.slurmusers.sacctmgr import SLURM_SACCT_MGR, SacctMgrStateSource, get_slurm_assoc_info
from vsc.slurmusers.sync import slurm_user_actions, slurm_user_commands
from vsc.utils.nagios import NAGIOS_EXIT_CRITICAL
from vsc.utils.script_tools import ExtendedSimpleOption

NAGIOS_HEADER = "sync_slurm_users"
NAGIOS_CHECK_INTERVAL_THRESHOLD = 60 * 60  # 60 minutes


def sync_slurm_users(identity_source, state_source, options):
    """Compute the sacctmgr commands.

    @param identity_source: IdentitySource
    @param state_source: SacctMgrStateSource
    @param options: the script options

    @returns: list of commands, each a list of arguments
    """
    (groups, identities) = get_identity_info(identity_source)
    group_names = set([g.name for g in groups])

    state = get_slurm_assoc_info(state_source, group_names)

    user_names = set([i.name for i in identities]) | set(state.users)
    defaults = default_settings(
        fairshare=options.fairshare,
        grptres=options.grptres,
        grptresrunmins=options.grptresrunmins,
    )
    policy = read_policy(options.policy, group_names, user_names, defaults=defaults)

    actions = slurm_user_actions(groups, identities, state, policy, min_uid=options.min_uid)

    return slurm_user_commands(actions, sacctmgr=options.sacctmgr)


def main():
    """
    Main script. The usual.
    """

    options = {
        "nagios-check-interval-threshold": NAGIOS_CHECK_INTERVAL_THRESHOLD,
        "min_uid": ("Lowest uid of users that get a Slurm association", int, "store", DEFAULT_MIN_UID),
        "fairshare": ("Default fairshare, use parent to inherit the account's share", str, "store",
                      DEFAULT_FAIRSHARE),
        "grptres": ("Default GrpTRES for users", str, "store", None),
        "grptresrunmins": ("Default GrpTRESRunMins for users", str, "store", None),
        "sacctmgr": ("Path to the sacctmgr command", str, "store", SLURM_SACCT_MGR),
        "getent": ("Path to the getent command", str, "store", GETENT),
        "policy": ("File with the DEFAULT, group and user limits", str, "store", DEFAULT_POLICY_FILE),
    }

    opts = ExtendedSimpleOption(options)
    stats = {}

    setup_report_output()

    try:
        commands = sync_slurm_users(
            GetentIdentitySource(getent=opts.options.getent),
            SacctMgrStateSource(sacctmgr=opts.options.sacctmgr),
            opts.options,
        )
        stats["commands"] = len(commands)

        logging.info("Generated %d commands", len(commands))
        if commands:
            print("\n".join([" ".join(c) for c in commands]))

    except Exception as err:
        logging.exception("critical exception caught: %s", err)
        opts.critical("Script failed in a horrible way")
        sys.exit(NAGIOS_EXIT_CRITICAL)

    opts.epilogue("Users synced to slurm", stats)


if __name__ == "__main__":
    main()
