# finaster/models/binary_tree.py
"""
BinaryTreeNode model - binary placement and left/right volume counters.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship, backref
from models.base import Base, AuditMixin


class BinaryTreeNode(Base, AuditMixin):
    __tablename__ = 'binary_tree'
    __table_args__ = (
        UniqueConstraint('parentID', 'position', name='uq_binary_tree_slot'),
        CheckConstraint('"leftUnmatched" >= 0', name='ck_binary_tree_left_unmatched'),
        CheckConstraint('"rightUnmatched" >= 0', name='ck_binary_tree_right_unmatched'),
    )

    # Primary key
    nodeID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), unique=True, nullable=False)
    parentID = Column(Integer, ForeignKey('binary_tree.nodeID'), nullable=True, index=True)
    position = Column(String(5), nullable=True)  # left, right (NULL for root)

    # Lifetime volume
    leftVolume = Column(DECIMAL(18, 2), default=0, nullable=False)
    rightVolume = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Volume not yet consumed by a match
    leftUnmatched = Column(DECIMAL(18, 2), default=0, nullable=False)
    rightUnmatched = Column(DECIMAL(18, 2), default=0, nullable=False)

    matchedToDate = Column(DECIMAL(18, 2), default=0, nullable=False)
    lastMatchedAt = Column(DateTime, nullable=True)

    # Relationships
    user = relationship('User', backref=backref('binaryNode', uselist=False))
    parent = relationship('BinaryTreeNode', remote_side=[nodeID], backref='children')

    def __repr__(self):
        return (
            f"<BinaryTreeNode(nodeID={self.nodeID}, user={self.userID}, "
            f"L={self.leftUnmatched}/{self.leftVolume}, R={self.rightUnmatched}/{self.rightVolume})>"
        )
