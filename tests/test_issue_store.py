import pytest

from civiceye.core.errors import ForbiddenError, InvalidLocationError, NotFoundError, ValidationError
from civiceye.models.interaction import IssueComment, IssueUpvote
from civiceye.models.issue import Issue, IssueStatus, IssueTag, Visibility
from civiceye.services.comments import CommentLog
from civiceye.services.issue_store import is_transition_allowed
from civiceye.services.upvotes import UpvoteLedger
from civiceye.services.validation import ImageUpload


class TestCreate:
    def test_defaults(self, make_issue, users):
        issue = make_issue(users["alice"], tags="road, pothole")
        assert issue.status == IssueStatus.OPEN
        assert issue.visibility == Visibility.PUBLIC
        assert issue.reported_by_id == users["alice"].id
        assert issue.tag_names == ["road", "pothole"]
        assert issue.resolved_at is None

    def test_location_object(self, issues, users):
        issue = issues.create(users["alice"], {
            "title": "Garbage", "description": "Overflowing bin", "category": "sanitation",
            "location": {"latitude": 12.5, "longitude": 77.1},
        })
        assert (issue.latitude, issue.longitude) == (12.5, 77.1)

    def test_invalid_location_writes_nothing(self, make_issue, users, db):
        with pytest.raises(InvalidLocationError):
            make_issue(users["alice"], latitude=95)
        assert db.query(Issue).count() == 0

    def test_images_are_saved(self, issues, users, media):
        issue = issues.create(users["alice"], {
            "title": "Graffiti", "description": "On the wall", "category": "CLEANLINESS",
            "latitude": 12.9, "longitude": 77.6,
        }, [ImageUpload("wall.png", "image/png", b"\x89PNG...")])
        assert len(issue.images) == 1
        assert (media.upload_dir / issue.images[0].filename).exists()

    def test_bad_image_writes_nothing(self, issues, users, db):
        with pytest.raises(ValidationError):
            issues.create(users["alice"], {
                "title": "x", "description": "y", "category": "OTHER",
                "latitude": 1, "longitude": 1,
            }, [ImageUpload("doc.txt", "text/plain", b"hello")])
        assert db.query(Issue).count() == 0


class TestGet:
    def test_private_issue_hidden_from_others(self, make_issue, issues, users):
        issue = make_issue(users["alice"], visibility="PRIVATE")
        with pytest.raises(ForbiddenError):
            issues.get(issue.id, users["bob"])
        assert issues.get(issue.id, users["alice"]).id == issue.id
        assert issues.get(issue.id, users["ada"]).id == issue.id

    def test_missing(self, issues, users):
        with pytest.raises(NotFoundError):
            issues.get(999, users["alice"])


class TestUpdate:
    def test_owner_can_update(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        updated = issues.update(issue.id, users["alice"], {"title": "New title", "tags": ["a", "b"]})
        assert updated.title == "New title"
        assert updated.tag_names == ["a", "b"]

    def test_stranger_cannot_update(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ForbiddenError):
            issues.update(issue.id, users["bob"], {"title": "Mine now"})

    def test_admin_can_update(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        assert issues.update(issue.id, users["ada"], {"priority": "high"}).priority.value == "HIGH"

    def test_protected_fields_ignored(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        updated = issues.update(issue.id, users["alice"], {
            "status": "RESOLVED", "reported_by_id": users["bob"].id, "description": "More detail",
        })
        assert updated.status == IssueStatus.OPEN
        assert updated.reported_by_id == users["alice"].id
        assert updated.description == "More detail"

    def test_invalid_patch_changes_nothing(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ValidationError):
            issues.update(issue.id, users["alice"], {"title": "ok", "category": "NOPE"})
        assert issues.get(issue.id, users["alice"]).title == "Pothole on 5th Main"


class TestTransitions:
    def test_table(self, users):
        alice, ada = users["alice"], users["ada"]
        assert is_transition_allowed(IssueStatus.OPEN, IssueStatus.IN_PROGRESS, alice)
        assert not is_transition_allowed(IssueStatus.IN_PROGRESS, IssueStatus.OPEN, ada)
        assert is_transition_allowed(IssueStatus.RESOLVED, IssueStatus.OPEN, alice)
        assert not is_transition_allowed(IssueStatus.CLOSED, IssueStatus.OPEN, alice)
        assert is_transition_allowed(IssueStatus.CLOSED, IssueStatus.OPEN, ada)
        assert is_transition_allowed(IssueStatus.CLOSED, IssueStatus.CLOSED, alice)

    def test_resolved_at_follows_status(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        resolved = issues.transition_status(issue.id, users["ada"], "RESOLVED")
        assert resolved.resolved_at is not None
        reopened = issues.transition_status(issue.id, users["ada"], "open")
        assert reopened.status == IssueStatus.OPEN
        assert reopened.resolved_at is None

    def test_reporter_cannot_change_status(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ForbiddenError):
            issues.transition_status(issue.id, users["alice"], "RESOLVED")

    def test_assignee_can_change_status(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        issues.assign(issue.id, users["sam"], users["sam"].id)
        assert issues.transition_status(issue.id, users["sam"], "IN_PROGRESS").status == IssueStatus.IN_PROGRESS

    def test_illegal_transition(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        issues.transition_status(issue.id, users["ada"], "IN_PROGRESS")
        with pytest.raises(ValidationError) as exc:
            issues.transition_status(issue.id, users["ada"], "OPEN")
        assert exc.value.field == "status"

    def test_unknown_status(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ValidationError):
            issues.transition_status(issue.id, users["ada"], "DONE")


class TestAssign:
    def test_citizen_forbidden(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ForbiddenError):
            issues.assign(issue.id, users["alice"], users["sam"].id)

    def test_staff_only_self(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ForbiddenError):
            issues.assign(issue.id, users["sam"], users["ada"].id)

    def test_admin_assign_and_unassign(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        assert issues.assign(issue.id, users["ada"], users["sam"].id).assignee.name == "Sam"
        assert issues.assign(issue.id, users["ada"], None).assigned_to_id is None

    def test_unknown_assignee(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ValidationError):
            issues.assign(issue.id, users["ada"], 4242)

    def test_resolved_issue_cannot_be_assigned(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        issues.transition_status(issue.id, users["ada"], "RESOLVED")
        with pytest.raises(ValidationError):
            issues.assign(issue.id, users["ada"], users["sam"].id)


class TestDelete:
    def test_removes_children_and_media(self, issues, users, db, store, media):
        issue = issues.create(users["alice"], {
            "title": "Leak", "description": "Water main leak", "category": "UTILITIES",
            "latitude": 12.9, "longitude": 77.6, "tags": "water",
        }, [ImageUpload("leak.jpg", "image/jpeg", b"jpegdata")])
        stored = media.upload_dir / issue.images[0].filename
        UpvoteLedger(db, store.locks).toggle(issue.id, users["bob"].id)
        CommentLog(db, store.locks).append(issue.id, users["bob"].id, "Seen it too")

        issues.delete(issue.id, users["alice"])

        assert db.get(Issue, issue.id) is None
        assert db.query(IssueUpvote).count() == 0
        assert db.query(IssueComment).count() == 0
        assert db.query(IssueTag).count() == 0
        assert not stored.exists()

    def test_second_delete_not_found(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        issues.delete(issue.id, users["alice"])
        with pytest.raises(NotFoundError):
            issues.delete(issue.id, users["alice"])

    def test_stranger_cannot_delete(self, make_issue, issues, users):
        issue = make_issue(users["alice"])
        with pytest.raises(ForbiddenError):
            issues.delete(issue.id, users["bob"])
