"""
Tests for host-authoritative replication between participants.

Each test runs a host and one or more guests as separate peers (own
pub/sub sender, own store handle) over a shared FakeRedis, delivering
channel messages explicitly with deliver().

Run with: pytest tests/test_replication.py -v
"""

import pytest

import errors
from errors import IllegalAction
from game import Action, ActionType, DrawSource, GameMode, GamePhase
from room import RoomStatus


# =============================================================================
# Helpers
# =============================================================================

def comparable(state) -> dict:
    """Snapshot dict without the per-participant mode."""
    d = state.to_dict()
    d.pop("mode")
    return d


async def open_table(make_peer, deliver, guests: int = 1):
    """Create a room, seat the guests and sync everyone's lobby view."""
    host_peer = make_peer("host")
    host = await host_peer.sessions.create_room("Hana")
    peers = [host_peer]
    seats = [host]
    for i in range(guests):
        peer = make_peer(f"guest{i}")
        seats.append(await peer.sessions.join_room(host.room_code, f"Guest {i}"))
        peers.append(peer)
        await deliver(*(p.pubsub for p in peers))
    return peers, seats


async def play_host_turn(host, deliver_all):
    """Discard the host's first card and draw from the deck."""
    card_id = host.game.state.current_player().hand[0].id
    await host.submit(Action(ActionType.DISCARD, 0, [card_id]))
    await host.submit(Action(ActionType.DRAW, 0, source=DrawSource.DECK))
    await deliver_all()


# =============================================================================
# Lobby
# =============================================================================

class TestLobbySync:

    @pytest.mark.asyncio
    async def test_host_sees_joined_guest(self, make_peer, deliver):
        _, (host, guest) = await open_table(make_peer, deliver)

        assert [p["name"] for p in host.room.players] == ["Hana", "Guest 0"]
        assert guest.room.players == host.room.players
        assert host.room.status == RoomStatus.WAITING

    @pytest.mark.asyncio
    async def test_start_match_reaches_guest(self, make_peer, deliver):
        peers, (host, guest) = await open_table(make_peer, deliver)

        await host.start_match(total_rounds=3)
        await deliver(*(p.pubsub for p in peers))

        assert guest.room.status == RoomStatus.PLAYING
        assert guest.game.state.mode == GameMode.ONLINE_CLIENT
        assert host.game.state.mode == GameMode.ONLINE_HOST
        assert comparable(guest.game.state) == comparable(host.game.state)
        assert guest.game.state.total_rounds == 3

    @pytest.mark.asyncio
    async def test_guest_cannot_start_match(self, make_peer, deliver):
        _, (_, guest) = await open_table(make_peer, deliver)

        with pytest.raises(IllegalAction) as exc:
            await guest.start_match(total_rounds=1)

        assert exc.value.code == errors.HOST_ONLY


# =============================================================================
# Actions
# =============================================================================

async def started_table(make_peer, deliver):
    """Host plus two guests, match started and synced."""
    peers, seats = await open_table(make_peer, deliver, guests=2)
    await seats[0].start_match(total_rounds=2)

    async def deliver_all():
        return await deliver(*(p.pubsub for p in peers))

    await deliver_all()
    return seats, deliver_all


class TestActionReplication:

    @pytest.mark.asyncio
    async def test_host_action_pushes_snapshot(self, make_peer, deliver):
        (host, guest, other), deliver_all = await started_table(make_peer, deliver)

        await play_host_turn(host, deliver_all)

        assert host.game.state.current_player_index == 1
        for follower in (guest, other):
            assert comparable(follower.game.state) == comparable(host.game.state)

    @pytest.mark.asyncio
    async def test_guest_action_is_forwarded_to_host(self, make_peer, deliver):
        (host, guest, other), deliver_all = await started_table(make_peer, deliver)
        await play_host_turn(host, deliver_all)

        card_id = guest.game.state.current_player().hand[0].id
        await guest.submit(Action(ActionType.DISCARD, 1, [card_id]))

        # Optimistic local apply before the host has answered
        assert guest.game.state.phase == GamePhase.DRAWING
        assert host.game.state.phase == GamePhase.TURN_START

        await deliver_all()

        assert host.game.state.phase == GamePhase.DRAWING
        assert host.game.state.pending_discard[0].id == card_id
        assert comparable(guest.game.state) == comparable(host.game.state)
        assert comparable(other.game.state) == comparable(host.game.state)

    @pytest.mark.asyncio
    async def test_guest_cannot_act_for_other_seat(self, make_peer, deliver):
        (host, guest, _), deliver_all = await started_table(make_peer, deliver)

        with pytest.raises(IllegalAction) as exc:
            await guest.submit(Action(ActionType.SHOW, 0))

        assert exc.value.code == errors.NOT_YOUR_SEAT

    @pytest.mark.asyncio
    async def test_rejected_forward_still_resyncs_sender(self, make_peer, deliver):
        (host, guest, _), deliver_all = await started_table(make_peer, deliver)
        # Guest's stale view wrongly believes it may act
        guest.game.state.current_player_index = 1
        before = comparable(host.game.state)

        await guest.submit(Action(ActionType.SHOW, 1))
        assert guest.game.state.phase == GamePhase.ROUND_END
        await deliver_all()

        assert comparable(host.game.state) == before
        assert comparable(guest.game.state) == before

    @pytest.mark.asyncio
    async def test_only_host_advances_rounds(self, make_peer, deliver):
        (host, guest, _), deliver_all = await started_table(make_peer, deliver)
        await host.submit(Action(ActionType.SHOW, 0))
        await deliver_all()
        assert guest.game.state.phase == GamePhase.ROUND_END

        with pytest.raises(IllegalAction) as exc:
            await guest.submit(Action(ActionType.NEXT_ROUND, 1))
        assert exc.value.code == errors.HOST_ONLY

        await host.submit(Action(ActionType.NEXT_ROUND, 0))
        await deliver_all()
        assert guest.game.state.current_round == 2
        assert comparable(guest.game.state) == comparable(host.game.state)

    @pytest.mark.asyncio
    async def test_match_end_finishes_room(self, make_peer, deliver):
        (host, guest, _), deliver_all = await started_table(make_peer, deliver)
        # Round 2 opens with the previous caller, so the host calls both rounds
        await host.submit(Action(ActionType.SHOW, 0))
        await host.submit(Action(ActionType.NEXT_ROUND, 0))
        assert host.game.state.current_player().id == 0
        await host.submit(Action(ActionType.SHOW, 0))
        await host.submit(Action(ActionType.END_MATCH, 0))
        await deliver_all()

        assert host.room.status == RoomStatus.FINISHED
        assert guest.room.status == RoomStatus.FINISHED
        assert guest.game.state.winner_id == host.game.state.winner_id


# =============================================================================
# Snapshot application
# =============================================================================

class TestApplyRoom:

    @pytest.mark.asyncio
    async def test_apply_room_is_idempotent(self, make_peer, deliver):
        peers, (host, guest) = await open_table(make_peer, deliver)
        await host.start_match(total_rounds=1)
        await deliver(*(p.pubsub for p in peers))

        first = guest.game.state.to_dict()
        guest.apply_room(host.room)
        guest.apply_room(host.room)

        assert guest.game.state.to_dict() == first

    @pytest.mark.asyncio
    async def test_return_to_lobby_clears_followers(self, make_peer, deliver):
        peers, (host, guest) = await open_table(make_peer, deliver)
        await host.start_match(total_rounds=1)
        await host.return_to_lobby()
        await deliver(*(p.pubsub for p in peers))

        assert guest.game.state is None
        assert guest.room.status == RoomStatus.WAITING

    @pytest.mark.asyncio
    async def test_room_closed(self, make_peer, deliver):
        peers, (host, guest) = await open_table(make_peer, deliver)
        await host.close_room()
        await deliver(*(p.pubsub for p in peers))

        assert guest.closed is True
        assert guest.game.state is None


# =============================================================================
# Failures and bots
# =============================================================================

class TestReplicationFailures:

    @pytest.mark.asyncio
    async def test_push_failure_becomes_notice(self, make_peer, deliver, fake_redis):
        _, (host, _) = await open_table(make_peer, deliver)
        await host.start_match(total_rounds=1)
        fake_redis.available = False

        await host.submit(Action(ActionType.SHOW, 0))

        assert host.game.state.phase == GamePhase.ROUND_END
        notices = host.take_notices()
        assert len(notices) == 1
        assert notices[0].code == errors.REPLICATION_FAILED
        assert host.take_notices() == []

    @pytest.mark.asyncio
    async def test_forward_failure_becomes_notice(self, make_peer, deliver, fake_redis):
        peers, (host, guest) = await open_table(make_peer, deliver)
        await host.start_match(total_rounds=1)
        await deliver(*(p.pubsub for p in peers))
        guest.game.state.current_player_index = 1
        fake_redis.available = False

        await guest.submit(Action(ActionType.SHOW, 1))

        assert [n.code for n in guest.take_notices()] == [errors.REPLICATION_FAILED]


class TestHostBots:

    @pytest.mark.asyncio
    async def test_host_plays_bot_seats(self, make_peer):
        host_peer = make_peer("host")
        host = await host_peer.sessions.create_room("Hana")
        await host.add_bot()
        await host.add_bot()
        assert [p.get("is_bot", False) for p in host.room.players] == [False, True, True]

        await host.start_match(total_rounds=1)
        card_id = host.game.state.current_player().hand[0].id
        await host.submit(Action(ActionType.DISCARD, 0, [card_id]))
        await host.submit(Action(ActionType.DRAW, 0, source=DrawSource.DECK))

        state = host.game.state
        if state.phase == GamePhase.TURN_START:
            assert state.current_player().id == 0
        else:
            assert state.phase == GamePhase.ROUND_END
        stored = await host_peer.store.get_room(host.room_code)
        assert stored.game_state == state.to_dict()

    @pytest.mark.asyncio
    async def test_guest_cannot_add_bots(self, make_peer, deliver):
        _, (_, guest) = await open_table(make_peer, deliver)

        with pytest.raises(IllegalAction):
            await guest.add_bot()
