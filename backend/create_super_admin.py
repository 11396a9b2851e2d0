#!/usr/bin/env python3
"""
Create (or promote) the platform super administrator.

Usage: python create_super_admin.py email@example.com "Full Name" password
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from closerflow.core.database import SessionLocal
from closerflow.core.roles import Role
from closerflow.core.security import hash_password, password_problem
from closerflow.models.user import User

logger = logging.getLogger("create_super_admin")


def create_super_admin(email: str, name: str, password: str) -> int:
    problem = password_problem(password)
    if problem:
        logger.error(problem)
        return 1

    db = SessionLocal()
    try:
        email = email.strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = Role.super_admin.value
            user.hashed_password = hash_password(password)
            logger.info("user %s promoted to super_admin", email)
        else:
            user = User(
                email=email,
                name=name,
                hashed_password=hash_password(password),
                role=Role.super_admin.value,
            )
            db.add(user)
            logger.info("super_admin %s created", email)
        db.commit()
        return 0
    except SQLAlchemyError:
        db.rollback()
        logger.exception("could not create super_admin %s", email)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(2)
    sys.exit(create_super_admin(*sys.argv[1:]))
