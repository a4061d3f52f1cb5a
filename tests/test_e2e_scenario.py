"""
End-to-end scenario over HTTP:

    Admin creates "Alpha" with pm1 as manager
    → pm1 sees exactly that project
    → pm1 files a daily report and reviews it
    → the report list shows the review joined on the report
"""


def test_manager_reports_and_reviews(client, admin, pm, ls, auth_header):
    created = client.post("/api/v1/projects", json={
        "name": "Alpha",
        "constructionStartDate": "01/01/2025",
        "plannedAcceptanceDate": "31/12/2025",
        "projectManagerIds": ["pm1"],
    }, headers=auth_header("admin1"))
    assert created.status_code == 201
    project_id = created.get_json()["id"]

    visible = client.get("/api/v1/projects", headers=auth_header("pm1")).get_json()
    assert [p["id"] for p in visible] == [project_id]
    assert client.get("/api/v1/projects", headers=auth_header("ls1")).get_json() == []

    report = client.post(f"/api/v1/projects/{project_id}/reports", json={
        "date": "10/03/2025", "tasks": "Poured foundation",
    }, headers=auth_header("pm1"))
    assert report.status_code == 201
    report_id = report.get_json()["id"]

    review = client.post(f"/api/v1/reports/{report_id}/review", json={"comment": "Approved"},
                         headers=auth_header("pm1"))
    assert review.status_code == 201

    reports = client.get(f"/api/v1/projects/{project_id}/reports", headers=auth_header("pm1")).get_json()
    assert len(reports) == 1
    assert reports[0]["tasks"] == "Poured foundation"
    assert reports[0]["submittedBy"] == "Pat Manager"
    assert reports[0]["managerReview"]["comment"] == "Approved"
    assert reports[0]["managerReview"]["reviewedByName"] == "Pat Manager"


def test_new_user_waits_for_approval(client, admin, auth_header):
    signup = client.post("/api/v1/auth/register", json={
        "email": "sam@example.com", "password": "secret123", "name": "Sam Site",
    })
    token = signup.get_json()["access_token"]
    uid = signup.get_json()["session"]["user"]["id"]
    headers = {"Authorization": f"Bearer {token}"}

    assert client.get("/api/v1/me/dashboard", headers=headers).status_code == 403

    approved = client.post(f"/api/v1/users/{uid}/approve", json={"role": "LeadSupervisor"},
                           headers=auth_header("admin1"))
    assert approved.status_code == 200

    me = client.get("/api/v1/auth/me", headers=headers).get_json()
    assert me["state"] == "active"
    assert client.get("/api/v1/me/dashboard", headers=headers).status_code == 200
