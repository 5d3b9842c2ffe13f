import os
from sqlalchemy import select
from app.db.session import SessionLocal
from app.models.company import Company
from app.models.salary import OperatorSalaryRule
from app.models.user import User
from app.core.security import hash_password

DEFAULT_COMPANIES = [
    ("F16 Arena", "arena"),
    ("F16 Ramen", "ramen"),
    ("F16 Extra", "extra"),
]

def seed_admin(db, username: str, password: str) -> bool:
    existing = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if existing:
        return False
    db.add(User(username=username, password_hash=hash_password(password), role="admin", is_active=True))
    return True

def seed_companies(db) -> int:
    added = 0
    for name, code in DEFAULT_COMPANIES:
        if db.execute(select(Company).where(Company.code == code)).scalars().first():
            continue
        db.add(Company(name=name, code=code))
        added += 1
    return added

def seed_salary_rules(db) -> int:
    added = 0
    for _, code in DEFAULT_COMPANIES:
        for shift in ("day", "night"):
            exists = db.execute(
                select(OperatorSalaryRule).where(
                    OperatorSalaryRule.company_code == code, OperatorSalaryRule.shift_type == shift
                )
            ).scalar_one_or_none()
            if exists:
                continue
            db.add(OperatorSalaryRule(company_code=code, shift_type=shift, is_active=True))
            added += 1
    return added

def main():
    username = os.environ.get("SEED_ADMIN_USER", "admin")
    password = os.environ.get("SEED_ADMIN_PASS", "admin123")

    db = SessionLocal()
    try:
        seed_admin(db, username, password)
        seed_companies(db)
        db.flush()
        seed_salary_rules(db)
        db.commit()
    finally:
        db.close()

if __name__ == "__main__":
    main()
