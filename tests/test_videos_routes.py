def test_list_videos_hides_deleted(client, login, seed):
    body = client.get("/api/videos", headers=login("student1")).get_json()

    ids = [video["id"] for video in body["videos"]]
    assert len(ids) == 7
    assert seed["deleted_video"] not in ids


def test_list_videos_by_folder_in_position_order(client, login, seed):
    body = client.get("/api/videos?folder=Basics", headers=login("student1")).get_json()

    assert [video["id"] for video in body["videos"]] == seed["basics"]


def test_folders(client, login, seed):
    body = client.get("/api/videos/folders", headers=login("student1")).get_json()

    assert body["folders"] == [{"name": "Advanced", "video_count": 2}, {"name": "Basics", "video_count": 5}]


def test_videos_require_login(client, seed):
    assert client.get("/api/videos").status_code == 401


def test_admin_manages_videos(client, login, seed):
    headers = login("admin")

    created = client.post("/api/videos", headers=headers, json={"title": "Intro", "folder": "Extras", "position": 1})
    video_id = created.get_json()["video"]["id"]
    updated = client.put(f"/api/videos/{video_id}", headers=headers, json={"title": "Introduction"})
    deleted = client.delete(f"/api/videos/{video_id}", headers=headers)

    assert created.status_code == 201
    assert updated.get_json()["video"]["title"] == "Introduction"
    assert deleted.status_code == 200
    assert client.delete(f"/api/videos/{video_id}", headers=headers).status_code == 404


def test_students_cannot_manage_videos(client, login, seed):
    response = client.post("/api/videos", headers=login("student1"), json={"title": "X", "folder": "Y"})

    assert response.status_code == 403


def test_deleted_video_no_longer_counts_towards_progress(client, login, seed):
    client.delete(f"/api/videos/{seed['basics'][4]}", headers=login("admin"))
    headers = login("student1")

    body = client.get("/api/progress/summary/student1", headers=headers).get_json()
    response = client.post("/api/progress/student1", json={"video_id": seed["basics"][4], "completed": True},
                           headers=headers)

    basics = next(folder for folder in body["folders"] if folder["folder"] == "Basics")
    assert basics["total_videos"] == 4
    assert response.status_code == 400


def test_video_description_is_sanitised(client, login, seed):
    response = client.post("/api/videos", headers=login("admin"), json={
        "title": "Intro", "folder": "Extras", "description": "<b>Watch</b><script>alert(1)</script>",
    })

    assert response.get_json()["video"]["description"] == "<b>Watch</b>alert(1)"


def test_get_single_video(client, login, seed):
    headers = login("student1")

    response = client.get(f"/api/videos/{seed['basics'][0]}", headers=headers)

    assert response.status_code == 200
    assert response.get_json()["video"]["title"] == "Basics 1"
    assert client.get(f"/api/videos/{seed['deleted_video']}", headers=headers).status_code == 404
    assert client.get("/api/videos/99999", headers=headers).status_code == 404
