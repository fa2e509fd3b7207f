from civiceye.models.user import User, UserRole, ADMIN_ROLES
from civiceye.models.issue import (
    Issue,
    IssueCategory,
    IssueImage,
    IssuePriority,
    IssueStatus,
    IssueTag,
    Visibility,
)
from civiceye.models.interaction import IssueComment, IssueUpvote
