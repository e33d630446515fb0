from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from medequip.db.base import Base


class AppUser(Base):
    __tablename__ = "app_users"

    UserID = Column(String(32), primary_key=True)
    Email = Column(String(255), nullable=False, unique=True, index=True)
    FullName = Column(String(255))
    PasswordHash = Column(String(128), nullable=False)
    PasswordSalt = Column(String(64), nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())

    Role = relationship("UserRole", back_populates="User", uselist=False, cascade="all, delete-orphan")


class UserRole(Base):
    __tablename__ = "user_roles"

    UserID = Column(String(32), ForeignKey("app_users.UserID"), primary_key=True)
    Role = Column(String(20), nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())

    User = relationship("AppUser", back_populates="Role")


class Machine(Base):
    __tablename__ = "machines"

    MachineID = Column(String(64), primary_key=True)
    MachineName = Column(String(255), nullable=False)
    Type = Column(String(255), nullable=False)
    Category = Column(String(255), nullable=False, index=True)
    Condition = Column(String(20), nullable=False, default="Good")
    Description = Column(String(2000), nullable=False)
    Price = Column(Numeric(12, 2), default=0)
    ImagePath = Column(String(500))
    IsAvailable = Column(Boolean, default=True)
    RepairHistory = Column(JSON, default=list)
    SparePartsReplaced = Column(JSON, default=list)
    WarrantyInfo = Column(String(1000))
    PerDay = Column(Numeric(12, 2), default=0)
    PerWeek = Column(Numeric(12, 2), default=0)
    PerMonth = Column(Numeric(12, 2), default=0)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())


class RentalRequest(Base):
    __tablename__ = "rental_requests"

    RequestID = Column(Integer, primary_key=True)
    UserID = Column(String(32), nullable=False, index=True)
    MachineID = Column(String(64), nullable=False)
    MachineName = Column(String(255), nullable=False)
    RequesterName = Column(String(255), nullable=False)
    Phone = Column(String(50), nullable=False)
    Location = Column(String(255), nullable=False)
    RentalDuration = Column(String(50), nullable=False)
    TotalPrice = Column(Numeric(12, 2), nullable=False)
    AdminStatus = Column(String(20), nullable=False, default="pending")
    DecisionReason = Column(String(500))
    DecidedBy = Column(String(32))
    DecisionDate = Column(DateTime)
    RentalID = Column(Integer, ForeignKey("rentals.RentalID"))
    CreatedDate = Column(DateTime, server_default=func.now())

    Rental = relationship("Rental", foreign_keys=[RentalID])


class Rental(Base):
    __tablename__ = "rentals"

    RentalID = Column(Integer, primary_key=True)
    UserID = Column(String(32), nullable=False, index=True)
    MachineID = Column(String(64), nullable=False)
    MachineName = Column(String(255), nullable=False)
    RequestID = Column(Integer, unique=True)
    RentalDuration = Column(String(50), nullable=False)
    TotalPrice = Column(Numeric(12, 2), nullable=False)
    Status = Column(String(20), nullable=False, default="ongoing")
    StartDate = Column(Date, nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())


class Purchase(Base):
    __tablename__ = "purchases"

    PurchaseID = Column(Integer, primary_key=True)
    UserID = Column(String(32), nullable=False, index=True)
    MachineID = Column(String(64), nullable=False)
    MachineName = Column(String(255), nullable=False)
    Price = Column(Numeric(12, 2), nullable=False)
    Status = Column(String(20), nullable=False, default="pending_payment")
    PaidDate = Column(DateTime)
    CreatedDate = Column(DateTime, server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_log"

    AuditID = Column(Integer, primary_key=True)
    EntityType = Column(String(50), nullable=False)
    EntityID = Column(String(64), nullable=False)
    Action = Column(String(50), nullable=False)
    Details = Column(String(1000))
    UserID = Column(String(32))
    CreatedAt = Column(DateTime, server_default=func.now())


class RetiredMachine(Base):
    __tablename__ = "retired_machines"

    MachineID = Column(String(64), primary_key=True)
    RetiredDate = Column(DateTime, server_default=func.now())
