from fastapi import status


def create_container(client, headers, name, **fields):
    response = client.post("/containers/", json={"name": name, **fields}, headers=headers)
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    return response.json()


def test_create_container_in_location(client, auth_headers):
    garage = client.post("/locations/", json={"name": "Garage"}, headers=auth_headers).json()
    box = create_container(
        client, auth_headers, "Box1", location_id=garage["id"], barcode="BOX-0001"
    )
    assert box["location_id"] == garage["id"]
    assert box["location_name"] == "Garage"
    assert box["parent_container_id"] is None


def test_unknown_location_or_parent_is_rejected(client, auth_headers):
    bad_location = client.post(
        "/containers/", json={"name": "Box", "location_id": 424242}, headers=auth_headers
    )
    assert bad_location.status_code == status.HTTP_400_BAD_REQUEST
    assert bad_location.json()["detail"] == "Location not found"

    bad_parent = client.post(
        "/containers/",
        json={"name": "Box", "parent_container_id": 424242},
        headers=auth_headers,
    )
    assert bad_parent.status_code == status.HTTP_400_BAD_REQUEST
    assert bad_parent.json()["detail"] == "Parent container not found"


def test_delete_blocked_by_item_then_allowed(client, auth_headers):
    box = create_container(client, auth_headers, "Box1")
    drill = client.post(
        "/items/", json={"name": "Drill", "container_id": box["id"]}, headers=auth_headers
    ).json()

    blocked = client.delete(f"/containers/{box['id']}", headers=auth_headers)
    assert blocked.status_code == status.HTTP_409_CONFLICT
    body = blocked.json()
    assert body["kind"] == "items"
    assert body["count"] == 1
    assert "1 item(s)" in body["detail"]

    assert client.delete(f"/items/{drill['id']}", headers=auth_headers).status_code == 200
    assert client.delete(f"/containers/{box['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/containers/{box['id']}", headers=auth_headers).status_code == 404


def test_nested_containers_tree_and_cycle(client, auth_headers):
    crate = create_container(client, auth_headers, "Crate")
    tray = create_container(client, auth_headers, "Tray", parent_container_id=crate["id"])
    pouch = create_container(client, auth_headers, "Pouch", parent_container_id=tray["id"])

    tree = client.get("/containers/", headers=auth_headers).json()
    assert [root["name"] for root in tree] == ["Crate"]
    assert tree[0]["child_count"] == 1
    assert tree[0]["children"][0]["children"][0]["id"] == pouch["id"]

    cycle = client.patch(
        f"/containers/{crate['id']}",
        json={"parent_container_id": pouch["id"]},
        headers=auth_headers,
    )
    assert cycle.status_code == status.HTTP_409_CONFLICT
    assert cycle.json()["kind"] == "cycle"

    blocked = client.delete(f"/containers/{crate['id']}", headers=auth_headers).json()
    assert blocked["kind"] == "children"


def test_filter_by_location_and_search(client, auth_headers):
    garage = client.post("/locations/", json={"name": "Garage"}, headers=auth_headers).json()
    create_container(client, auth_headers, "Toolbox", location_id=garage["id"])
    create_container(client, auth_headers, "Shoebox", description="winter boots")

    in_garage = client.get(
        f"/containers/?flat=true&location_id={garage['id']}", headers=auth_headers
    ).json()
    assert [row["name"] for row in in_garage] == ["Toolbox"]

    boots = client.get("/containers/?search=boots", headers=auth_headers).json()
    assert [row["name"] for row in boots] == ["Shoebox"]


def test_find_container_by_barcode(client, auth_headers):
    box = create_container(client, auth_headers, "Labelled", barcode="BOX-42")
    client.post(
        "/items/", json={"name": "Cable", "container_id": box["id"]}, headers=auth_headers
    )

    found = client.get("/containers/barcode/BOX-42", headers=auth_headers)
    assert found.status_code == status.HTTP_200_OK
    assert found.json()["id"] == box["id"]
    assert [item["name"] for item in found.json()["items"]] == ["Cable"]

    assert client.get("/containers/barcode/NOPE", headers=auth_headers).status_code == 404


def test_clearing_location_keeps_container(client, auth_headers):
    garage = client.post("/locations/", json={"name": "Garage"}, headers=auth_headers).json()
    box = create_container(client, auth_headers, "Box", location_id=garage["id"])

    moved = client.patch(
        f"/containers/{box['id']}", json={"location_id": None}, headers=auth_headers
    )
    assert moved.status_code == status.HTTP_200_OK
    assert moved.json()["location_id"] is None
    assert client.delete(f"/locations/{garage['id']}", headers=auth_headers).status_code == 200


def test_reparent_container_sideways(client, auth_headers):
    crate = create_container(client, auth_headers, "Crate")
    tray = create_container(client, auth_headers, "Tray", parent_container_id=crate["id"])
    drawer = create_container(client, auth_headers, "Drawer")

    response = client.patch(
        f"/containers/{tray['id']}",
        json={"parent_container_id": drawer["id"]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["parent_container_id"] == drawer["id"]

    tree = client.get("/containers/", headers=auth_headers).json()
    assert [root["name"] for root in tree] == ["Crate", "Drawer"]
    assert not tree[0]["children"]
    assert [child["id"] for child in tree[1]["children"]] == [tray["id"]]


def test_update_to_another_users_parent_or_location_is_rejected(client, make_user):
    owner = make_user()
    stranger = make_user("stranger")
    their_box = create_container(client, owner, "Safe")
    their_room = client.post("/locations/", json={"name": "Study"}, headers=owner).json()
    mine = create_container(client, stranger, "Bag")

    bad_parent = client.patch(
        f"/containers/{mine['id']}",
        json={"parent_container_id": their_box["id"]},
        headers=stranger,
    )
    assert bad_parent.status_code == status.HTTP_400_BAD_REQUEST
    assert bad_parent.json()["detail"] == "Parent container not found"

    bad_location = client.patch(
        f"/containers/{mine['id']}",
        json={"location_id": their_room["id"]},
        headers=stranger,
    )
    assert bad_location.status_code == status.HTTP_400_BAD_REQUEST
    assert bad_location.json()["detail"] == "Location not found"

    unchanged = client.get(f"/containers/{mine['id']}", headers=stranger).json()
    assert unchanged["parent_container_id"] is None
    assert unchanged["location_id"] is None
