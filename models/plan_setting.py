# finaster/models/plan_setting.py
"""
PlanSetting model - feature flags with JSON payload.
"""
from sqlalchemy import Column, Integer, String, Boolean, JSON
from models.base import Base, AuditMixin


class PlanSetting(Base, AuditMixin):
    __tablename__ = 'plan_settings'

    settingID = Column(Integer, primary_key=True, autoincrement=True)
    featureKey = Column(String, unique=True, nullable=False)  # binary_plan, binary_matching, booster_income
    isActive = Column(Boolean, default=False, nullable=False)
    payload = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<PlanSetting(feature={self.featureKey}, active={self.isActive})>"
