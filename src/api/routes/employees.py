import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.core.database import get_db
from src.models.database import Employee as DBEmployee, Order as DBOrder
from src.models.schemas import Employee, EmployeeCreate, EmployeeUpdate

logger = logging.getLogger(__name__)

router = APIRouter()

LOGIN_TAKEN = "Login already exists"


def _login_taken(db: Session, login: str) -> bool:
    return db.query(DBEmployee.id).filter(DBEmployee.login == login).first() is not None


def _commit_login(db: Session, login: str) -> None:
    """Commit, reporting a login taken by a concurrent request as a bad request"""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Login {login} taken concurrently: {e.orig}")
        raise HTTPException(status_code=400, detail=LOGIN_TAKEN)


@router.post("/", response_model=Employee)
async def create_employee(employee_data: EmployeeCreate, db: Session = Depends(get_db)):
    """Register an employee"""
    if _login_taken(db, employee_data.login):
        raise HTTPException(status_code=400, detail=LOGIN_TAKEN)

    employee = DBEmployee(**employee_data.model_dump(), sell_counter=0)
    db.add(employee)
    _commit_login(db, employee_data.login)
    db.refresh(employee)
    return employee


@router.get("/", response_model=List[Employee])
async def get_employees(db: Session = Depends(get_db)):
    """Get all employees"""
    return db.query(DBEmployee).all()


@router.get("/{employee_id}", response_model=Employee)
async def get_employee(employee_id: UUID, db: Session = Depends(get_db)):
    """Get a specific employee"""
    employee = db.get(DBEmployee, employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee


@router.put("/{employee_id}", response_model=Employee)
async def update_employee(employee_id: UUID, employee_data: EmployeeUpdate, db: Session = Depends(get_db)):
    """Change the fields given in the request; the login must stay unique"""
    employee = db.get(DBEmployee, employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")

    changes = employee_data.model_dump(exclude_unset=True, exclude_none=True)
    login = changes.get("login")
    if login is not None and login != employee.login and _login_taken(db, login):
        raise HTTPException(status_code=400, detail=LOGIN_TAKEN)

    for field, value in changes.items():
        setattr(employee, field, value)
    _commit_login(db, employee.login)
    db.refresh(employee)
    return employee


@router.delete("/{employee_id}", response_model=Employee)
async def delete_employee(employee_id: UUID, db: Session = Depends(get_db)):
    """Delete an employee that has no orders"""
    employee = db.get(DBEmployee, employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found")
    if db.query(DBOrder.id).filter(DBOrder.employee_id == employee_id).first() is not None:
        raise HTTPException(status_code=400, detail="Employee has orders and cannot be deleted")

    deleted = Employee.model_validate(employee)
    db.delete(employee)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Employee {employee_id} not deleted: {e.orig}")
        raise HTTPException(status_code=400, detail="Employee has orders and cannot be deleted")
    logger.info(f"Employee {employee_id} deleted")
    return deleted
