#!/usr/bin/env python3
"""Emit deterministic SQL that grants a workflow role to a Supabase user."""

from __future__ import annotations

import argparse

ROLE_CHOICES = ["PLANEACION", "ATENCION_SALUD", "RH", "COORD_ESTATAL", "VALIDADOR", "DG"]


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(
    *,
    role: str,
    user_id: str | None,
    email: str | None,
    validator_unit_id: int | None = None,
) -> str:
    role_value = _quote_sql(role)

    if user_id:
        target_select = f"select {_quote_sql(user_id)}::uuid as id"
    else:
        assert email is not None
        target_select = f"select id from auth.users where email = {_quote_sql(email)}"

    sql = f"""-- Recruitment workflow role bootstrap SQL
-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).

insert into user_roles (user_id, role_id)
select target.id, roles.id
from ({target_select}) as target
cross join roles
where roles.name = {role_value}
on conflict (user_id, role_id) do nothing;
"""
    if validator_unit_id is not None:
        sql += f"""
insert into user_validator_units (user_id, validator_unit_id)
select target.id, {validator_unit_id}
from ({target_select}) as target
on conflict (user_id, validator_unit_id) do nothing;
"""
    return sql


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant a workflow role to a Supabase user.")
    parser.add_argument(
        "--role",
        choices=ROLE_CHOICES,
        required=True,
        help="Role label stored in roles.name",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    parser.add_argument(
        "--validator-unit-id",
        type=int,
        default=None,
        help="Also scope the user to this validator unit (VALIDADOR only)",
    )
    args = parser.parse_args()
    if args.validator_unit_id is not None and args.role != "VALIDADOR":
        parser.error("--validator-unit-id requires --role VALIDADOR")

    print(
        render_sql(
            role=args.role,
            user_id=args.user_id,
            email=args.email,
            validator_unit_id=args.validator_unit_id,
        )
    )


if __name__ == "__main__":
    main()
