# finaster/models/binary_match.py
"""
BinaryMatch model - append-only audit of executed matches.
"""
from sqlalchemy import Column, Integer, DECIMAL, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class BinaryMatch(Base, AuditMixin):
    __tablename__ = 'binary_matches'

    matchID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    matchedVolume = Column(DECIMAL(18, 2), nullable=False)

    # Unmatched figures around the match
    leftVolumeBefore = Column(DECIMAL(18, 2), nullable=False)
    rightVolumeBefore = Column(DECIMAL(18, 2), nullable=False)
    leftVolumeAfter = Column(DECIMAL(18, 2), nullable=False)
    rightVolumeAfter = Column(DECIMAL(18, 2), nullable=False)

    payoutAmount = Column(DECIMAL(18, 2), nullable=False)
    payoutPercentage = Column(DECIMAL(6, 2), nullable=False)

    user = relationship('User', backref='binaryMatches')

    def __repr__(self):
        return f"<BinaryMatch(matchID={self.matchID}, user={self.userID}, volume={self.matchedVolume})>"
