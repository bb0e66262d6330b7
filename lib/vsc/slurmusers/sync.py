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
Functions to deploy users to slurm.

Each eligible UNIX user gets an association in the account named after the user's primary group.
The limits of the association follow the policy: a user setting wins over a group setting, which
wins over the default. Attributes without any policy are left alone.
"""
import logging
from enum import Enum

from vsc.utils.missing import namedtuple_with_defaults

from vsc.slurmusers import report
from vsc.slurmusers.identity import DEFAULT_MIN_UID, is_eligible
from vsc.slurmusers.sacctmgr import (
    Attribute,
    create_add_user_command, create_modify_user_command, create_delete_user_command,
    )


class ActionTypes(Enum):
    create = "create"
    modify = "modify"
    noop = "noop"
    delete = "delete"


class DesiredAttributes(dict):
    """Attribute values as they should be according to the policy."""
    pass


ResolvedProfile = namedtuple_with_defaults('ResolvedProfile', ['user', 'account', 'defaultaccount', 'desired'])
ReconciliationAction = namedtuple_with_defaults(
    'ReconciliationAction', ['user', 'action', 'defaultaccount', 'changes']
)


def resolve_profile(identity, group, policy, state, notified_groups=None):
    """Determine the settings the user should have.

    @param identity: the user's Identity
    @param group: the Group of the user's primary gid, i.e., the account
    @param policy: Policy
    @param state: SchedulerState
    @param notified_groups: set of groups for which the lack of group settings was already reported

    @returns: ResolvedProfile
    """
    account = group.name
    defaultaccount = None

    current_accounts = state.accounts_for(identity.name)
    if not current_accounts:
        defaultaccount = account
    elif account not in current_accounts:
        report.notice(
            "user %s is in account(s) %s instead of %s, setting the default account",
            identity.name, ",".join(sorted(current_accounts)), account,
        )
        defaultaccount = account

    desired = DesiredAttributes(policy.users.get(identity.name, {}))

    group_settings = policy.groups.get(account)
    if group_settings:
        for (attribute, value) in group_settings.items():
            desired.setdefault(attribute, value)
    elif notified_groups is None or account not in notified_groups:
        report.notice("no policy for group %s, using the defaults", account)
        if notified_groups is not None:
            notified_groups.add(account)

    for (attribute, value) in policy.defaults.items():
        desired.setdefault(attribute, value)

    return ResolvedProfile(user=identity.name, account=account, defaultaccount=defaultaccount, desired=desired)


def diff_profile(profile, state):
    """Compare the resolved profile with the current association of the user.

    @returns: ReconciliationAction
    """
    association = state.association(profile.user, profile.account)

    if association is None:
        return ReconciliationAction(
            user=profile.user,
            action=ActionTypes.create,
            defaultaccount=profile.defaultaccount,
            changes=DesiredAttributes(profile.desired),
        )

    current = association.Attributes
    changes = DesiredAttributes()
    for attribute in Attribute:
        if attribute not in profile.desired:
            continue
        value = profile.desired[attribute]
        if value.lower() != current.get(attribute, "").lower():
            logging.debug(
                "User %s: %s changes from %s to %s", profile.user, attribute.value, current.get(attribute), value
            )
            changes[attribute] = value

    if not changes and profile.defaultaccount is None:
        action = ActionTypes.noop
    else:
        action = ActionTypes.modify

    return ReconciliationAction(
        user=profile.user,
        action=action,
        defaultaccount=profile.defaultaccount,
        changes=changes,
    )


def slurm_user_actions(groups, identities, state, policy, min_uid=DEFAULT_MIN_UID):
    """Determine what should happen to each user.

    Users are processed in name order. Users that have an association but are not eligible
    (anymore) are deleted at the end.

    @returns: list of ReconciliationAction, including the noops
    """
    groups_by_gid = dict([(g.gid, g) for g in groups])

    actions = []
    seen = set()
    eligible = set()
    notified_groups = set()
    missing_accounts = set()

    for identity in sorted(identities, key=lambda i: i.name):
        if identity.name in seen:
            logging.warning("Duplicate passwd entry for user %s, using the first one", identity.name)
            continue
        seen.add(identity.name)

        if not is_eligible(identity, min_uid):
            continue
        eligible.add(identity.name)

        group = groups_by_gid.get(identity.gid)
        if group is None:
            report.error("user %s has gid %d, which does not map to a known group, skipping", identity.name, identity.gid)
            continue

        if group.name not in state.accounts and group.name not in missing_accounts:
            report.warning("account %s does not exist in slurm", group.name)
            missing_accounts.add(group.name)

        profile = resolve_profile(identity, group, policy, state, notified_groups=notified_groups)
        actions.append(diff_profile(profile, state))

    for user in sorted(set(state.users) - eligible):
        actions.append(ReconciliationAction(user=user, action=ActionTypes.delete))

    for action_type in ActionTypes:
        logging.info("%d users to %s", len([a for a in actions if a.action == action_type]), action_type.value)

    return actions


def slurm_user_commands(actions, sacctmgr=None):
    """Create the sacctmgr commands for the given actions, in the same order. Noops are skipped.

    @returns: list of commands, each a list of arguments
    """
    commands = []

    for action in actions:
        if action.action == ActionTypes.create:
            commands.append(create_add_user_command(
                action.user,
                defaultaccount=action.defaultaccount,
                settings=action.changes,
                sacctmgr=sacctmgr,
            ))
        elif action.action == ActionTypes.modify:
            commands.append(create_modify_user_command(
                action.user,
                defaultaccount=action.defaultaccount,
                settings=action.changes,
                sacctmgr=sacctmgr,
            ))
        elif action.action == ActionTypes.delete:
            commands.append(create_delete_user_command(action.user, sacctmgr=sacctmgr))

    return commands
