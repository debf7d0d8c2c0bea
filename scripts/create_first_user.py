import sys
import os
from sqlmodel import Session, SQLModel, select

# Add current directory to path
sys.path.append(os.getcwd())

from app.core.config import settings
from app.core.security import create_access_token
from app.db.session import engine
from app.models.employee import Employee, UserAccount


def create_initial_user():
    print("--- Initial Admin Creation ---")

    emp_code = settings.BOOTSTRAP_EMP_CODES[0] if settings.BOOTSTRAP_EMP_CODES else "E0001"
    username = "admin"

    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        # Check if the account already exists
        account = session.exec(select(UserAccount).where(UserAccount.username == username)).first()

        if account:
            print(f"Account {username} already exists.")
        else:
            employee = session.exec(select(Employee).where(Employee.emp_code == emp_code)).first()
            if not employee:
                print(f"Creating employee {emp_code}...")
                employee = Employee(
                    emp_code=emp_code,
                    name="System Administrator",
                    designation="Administrator",
                    department="Management",
                    email=os.getenv("ADMIN_EMAIL"),
                )
                session.add(employee)
                session.flush()

            print(f"Creating account {username}...")
            account = UserAccount(username=username, employee_id=employee.id, role=settings.ADMIN_ROLE)
            session.add(account)
            session.commit()
            session.refresh(account)
            print("Initial admin created successfully!")

        print(f"Employee code: {emp_code}")
        print(f"Role: {account.role}")
        print(f"Access token: {create_access_token(account.id)}")


if __name__ == "__main__":
    create_initial_user()
