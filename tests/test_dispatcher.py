import asyncio
import io

from PIL import Image

from config.settings import DeckSettings
from core.baselines import LOGO_ICON
from core.cache_manager import CacheKey
from core.data_models import EventType, PushEvent, RepeatMode, ShuffleMode
from core.dispatcher import PAUSE_ICON, PLAY_ICON, EventDispatcher

from helpers import make_context

ITEM = {
    "name": "Song",
    "artistName": "Band",
    "albumName": "Album",
    "artwork": {"url": "http://art/{w}x{h}.jpg", "width": 300, "height": 300},
    "inLibrary": True,
    "inFavorites": False,
    "isPlaying": True,
    "currentPlaybackTime": 30,
    "durationInMillis": 120000,
}


def _event(kind, data):
    return PushEvent(type=kind.value, data=data)


def _png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), (0, 128, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_repeated_playback_state_writes_once():
    ctx, surface, *_ = make_context()
    dispatcher = EventDispatcher(ctx)
    dispatcher.dispatch(_event(EventType.PLAYBACK_STATE, {"state": "playing"}))
    dispatcher.dispatch(_event(EventType.PLAYBACK_STATE, {"state": "playing"}))
    assert surface.of("state", "toggle") == [1]
    assert surface.of("image", "toggle") == [PAUSE_ICON]

    dispatcher.dispatch(_event(EventType.PLAYBACK_STATE, {"state": "paused"}))
    assert surface.of("state", "toggle") == [1, 0]
    assert surface.of("image", "toggle") == [PAUSE_ICON, PLAY_ICON]


def test_adaptive_icons_always_use_play_image():
    ctx, surface, *_ = make_context(DeckSettings(rpc_key="t", use_adaptive_icons=True))
    EventDispatcher(ctx).dispatch(_event(EventType.PLAYBACK_STATE, {"state": "playing"}))
    assert surface.of("image", "toggle") == [PLAY_ICON]


def test_playback_time_ticks_only_move_the_progress_ring():
    ctx, surface, _client, _scheduler, spawner = make_context()
    dispatcher = EventDispatcher(ctx)
    dispatcher.dispatch(_event(EventType.NOW_PLAYING_ITEM, ITEM))
    spawned = len(spawner.pending)
    surface.clear()

    for position in (36, 60, 90):
        dispatcher.dispatch(_event(EventType.PLAYBACK_TIME, {
            "currentPlaybackTime": position,
            "currentPlaybackDuration": 120,
            "isPlaying": True,
        }))

    assert surface.calls == [
        ("feedback", "playback_dial", {"indicator1": 30}),
        ("feedback", "playback_dial", {"indicator1": 50}),
        ("feedback", "playback_dial", {"indicator1": 75}),
    ]
    assert len(spawner.pending) == spawned
    assert ctx.cache.get(CacheKey.CURRENT_PLAYBACK_TIME) == 90.0
    spawner.discard()


def test_now_playing_item_refreshes_every_region():
    ctx, surface, _client, _scheduler, spawner = make_context()
    EventDispatcher(ctx).dispatch(_event(EventType.NOW_PLAYING_ITEM, ITEM))

    assert surface.last_state("toggle") == 1
    assert {"title": "Song - Album"} in surface.of("feedback", "playback_dial")
    assert {"indicator1": 25} in surface.of("feedback", "playback_dial")
    assert surface.of("image", "song_name")[0].startswith("data:image/png;base64,")
    assert surface.last_state("add_to_library") == 1
    assert surface.last_state("like") == 0
    assert ctx.cache.get(CacheKey.ARTWORK) == "http://art/300x300.jpg"
    assert ctx.cache.get(CacheKey.CURRENT_PLAYBACK_TIME) == 30.0
    # artwork download and mode refresh
    assert len(spawner.pending) == 2
    spawner.discard()


def test_same_track_again_skips_title_and_artwork():
    ctx, surface, _client, _scheduler, spawner = make_context()
    dispatcher = EventDispatcher(ctx)
    dispatcher.dispatch(_event(EventType.NOW_PLAYING_ITEM, ITEM))
    spawner.discard()
    titles = [p for p in surface.of("feedback", "playback_dial") if "title" in p]
    images = surface.of("image", "song_name")

    dispatcher.dispatch(_event(EventType.NOW_PLAYING_ITEM, ITEM))
    assert [p for p in surface.of("feedback", "playback_dial") if "title" in p] == titles
    assert surface.of("image", "song_name") == images
    # only the mode refresh is spawned again
    assert len(spawner.pending) == 1
    spawner.discard()


def test_dial_title_without_marquee_is_written_directly():
    settings = DeckSettings(rpc_key="t")
    settings.dial.marquee.enabled = False
    ctx, surface, _client, _scheduler, spawner = make_context(settings)
    long_item = dict(ITEM, name="A Much Longer Song Name Than Fifteen")
    EventDispatcher(ctx).dispatch(_event(EventType.NOW_PLAYING_ITEM, long_item))
    assert {"title": "A Much Longer Song Name Than Fifteen - Album"} in surface.of("feedback", "playback_dial")
    assert not ctx.text_marquee.active
    spawner.discard()


def test_long_dial_title_starts_text_marquee():
    ctx, surface, _client, _scheduler, spawner = make_context()
    long_item = dict(ITEM, name="A Much Longer Song Name Than Fifteen")
    EventDispatcher(ctx).dispatch(_event(EventType.NOW_PLAYING_ITEM, long_item))
    assert ctx.text_marquee.active
    assert {"title": "A Much Longer S"} in surface.of("feedback", "playback_dial")
    ctx.stop_marquees()
    spawner.discard()


def test_event_without_data_resets_to_defaults():
    ctx, surface, *_ = make_context()
    dispatcher = EventDispatcher(ctx)
    dispatcher.dispatch(_event(EventType.PLAYBACK_STATE, {"state": "playing"}))
    surface.clear()

    dispatcher.dispatch(_event(EventType.NOW_PLAYING_STATUS, None))
    assert not ctx.cache.has_key(CacheKey.STATUS)
    assert surface.last_state("toggle") == 0
    assert surface.of("feedback", "playback_dial")[-1]["title"] == "Cider - N/A"


def test_unknown_event_type_is_ignored():
    ctx, surface, *_ = make_context()
    EventDispatcher(ctx).dispatch(PushEvent(type="lyrics.didChange", data={"x": 1}))
    assert surface.calls == []


def test_volume_event_updates_dial():
    ctx, surface, *_ = make_context()
    ctx.volume.muted = True
    EventDispatcher(ctx).dispatch(_event(EventType.VOLUME, 0.3))
    assert surface.of("feedback", "playback_dial") == [
        {"indicator2": 30, "icon2": "actions/assets/buttons/volume-down-1"}
    ]
    assert ctx.volume.level == 0.3
    assert ctx.volume.muted is False


def test_mode_events_set_key_state():
    ctx, surface, *_ = make_context()
    dispatcher = EventDispatcher(ctx)
    dispatcher.dispatch(_event(EventType.REPEAT_MODE, 2))
    dispatcher.dispatch(_event(EventType.SHUFFLE_MODE, 1))
    dispatcher.dispatch(_event(EventType.REPEAT_MODE, "bogus"))
    assert surface.of("state", "repeat") == [2]
    assert surface.of("state", "shuffle") == [1]
    assert ctx.cache.get(CacheKey.REPEAT_MODE) is RepeatMode.ALL
    assert ctx.cache.get(CacheKey.SHUFFLE_MODE) is ShuffleMode.ON


def test_favorite_status_sets_like_and_clears_dislike():
    ctx, surface, *_ = make_context()
    EventDispatcher(ctx).dispatch(_event(EventType.NOW_PLAYING_STATUS, {"inLibrary": False, "inFavorites": True}))
    assert surface.last_state("like") == 1
    assert surface.last_state("dislike") == 0
    assert surface.last_state("add_to_library") == 0


def test_mode_refresh_yields_to_newer_push_event():
    ctx, surface, client, *_ = make_context()
    dispatcher = EventDispatcher(ctx)
    client.repeat = RepeatMode.ALL
    client.shuffle = ShuffleMode.ON

    async def _run():
        task = asyncio.ensure_future(dispatcher.refresh_modes())
        await asyncio.sleep(0)
        dispatcher.dispatch(_event(EventType.REPEAT_MODE, 1))
        await task

    asyncio.run(_run())
    assert surface.of("state", "repeat") == [1]
    assert surface.of("state", "shuffle") == [1]


def test_artwork_written_to_album_art_and_dial():
    ctx, surface, client, *_ = make_context()
    client.artwork = _png_bytes()
    dispatcher = EventDispatcher(ctx)
    ctx.cache.check_and_update(CacheKey.ARTWORK, "http://art/1.jpg")

    asyncio.run(dispatcher.load_artwork("http://art/1.jpg"))
    image = surface.of("image", "album_art")[0]
    assert image.startswith("data:image/png;base64,")
    assert surface.of("feedback", "playback_dial") == [{"icon1": image}]


def test_artwork_on_dial_can_be_disabled():
    settings = DeckSettings(rpc_key="t")
    settings.dial.show_artwork_on_dial = False
    ctx, surface, client, *_ = make_context(settings)
    client.artwork = _png_bytes()
    ctx.cache.check_and_update(CacheKey.ARTWORK, "http://art/1.jpg")
    asyncio.run(EventDispatcher(ctx).load_artwork("http://art/1.jpg"))
    assert surface.of("feedback", "playback_dial") == [{"icon1": LOGO_ICON}]


def test_stale_artwork_is_discarded():
    ctx, surface, client, *_ = make_context()
    client.artwork = _png_bytes()
    ctx.cache.check_and_update(CacheKey.ARTWORK, "http://art/2.jpg")
    asyncio.run(EventDispatcher(ctx).load_artwork("http://art/1.jpg"))
    assert surface.of("image", "album_art") == []


def test_artwork_discarded_when_not_ready():
    ctx, surface, client, *_ = make_context(ready=False)
    client.artwork = _png_bytes()
    ctx.cache.check_and_update(CacheKey.ARTWORK, "http://art/1.jpg")
    asyncio.run(EventDispatcher(ctx).load_artwork("http://art/1.jpg"))
    assert surface.calls == []
