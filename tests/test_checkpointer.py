import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.checkpoint.base import empty_checkpoint
from langgraph.graph import END, START, MessagesState, StateGraph

from personal_agent.models import Message
from personal_agent.services.checkpointer import DatabaseCheckpointSaver
from personal_agent.services.conversations import ConversationService


def _config(thread_id="slack-C1-U1"):
    return {"configurable": {"thread_id": thread_id, "checkpoint_ns": ""}}


def _graph_checkpoint(messages):
    checkpoint = empty_checkpoint()
    checkpoint["channel_values"] = {"messages": messages}
    return checkpoint


@pytest.fixture
def saver(session_factory) -> DatabaseCheckpointSaver:
    return DatabaseCheckpointSaver(session_factory=session_factory)


def test_get_tuple_for_unknown_thread(saver):
    assert saver.get_tuple(_config()) is None


def test_get_tuple_without_thread_id(saver):
    assert saver.get_tuple({"configurable": {}}) is None


def test_put_then_get_tuple(saver):
    messages = [SystemMessage(content="be brief"), HumanMessage(content="hi"), AIMessage(content="hello")]
    returned = saver.put(_config(), _graph_checkpoint(messages), {"source": "loop", "step": 1}, {})
    assert returned["configurable"]["thread_id"] == "slack-C1-U1"

    checkpoint_tuple = saver.get_tuple(_config())
    restored = checkpoint_tuple.checkpoint["channel_values"]["messages"]
    assert [type(m) for m in restored] == [SystemMessage, HumanMessage, AIMessage]
    assert [m.content for m in restored] == ["be brief", "hi", "hello"]
    assert checkpoint_tuple.metadata["step"] == 3
    assert checkpoint_tuple.config["configurable"]["checkpoint_id"] == checkpoint_tuple.checkpoint["id"]


def test_checkpoint_id_changes_with_step(saver):
    saver.put(_config(), _graph_checkpoint([HumanMessage(content="hi")]), {}, {})
    first = saver.get_tuple(_config()).checkpoint["id"]
    saver.put(_config(), _graph_checkpoint([HumanMessage(content="hi"), AIMessage(content="yo")]), {}, {})
    second = saver.get_tuple(_config()).checkpoint["id"]
    assert first != second
    assert second == saver.get_tuple(_config()).checkpoint["id"]


def test_replayed_put_does_not_duplicate(saver, session_factory):
    checkpoint = _graph_checkpoint([HumanMessage(content="hi"), AIMessage(content="hello")])
    saver.put(_config(), checkpoint, {}, {})
    saver.put(_config(), checkpoint, {}, {})

    session = session_factory()
    try:
        assert session.query(Message).count() == 2
    finally:
        session.close()


def test_put_requires_thread_id(saver):
    with pytest.raises(ValueError):
        saver.put({"configurable": {}}, _graph_checkpoint([]), {}, {})


def test_list_yields_single_checkpoint(saver):
    assert list(saver.list(_config())) == []
    saver.put(_config(), _graph_checkpoint([HumanMessage(content="hi")]), {}, {})
    assert len(list(saver.list(_config()))) == 1


def test_put_writes_is_a_no_op(saver):
    assert saver.put_writes(_config(), [("messages", "x")], "task-1") is None


def test_async_variants(saver):
    async def run():
        await saver.aput(_config(), _graph_checkpoint([HumanMessage(content="hi")]), {}, {})
        checkpoint_tuple = await saver.aget_tuple(_config())
        listed = [item async for item in saver.alist(_config())]
        return checkpoint_tuple, listed

    checkpoint_tuple, listed = asyncio.run(run())
    assert checkpoint_tuple.checkpoint["channel_values"]["messages"][0].content == "hi"
    assert len(listed) == 1


def test_compiled_graph_appends_each_turn_once(saver, session_factory):
    def respond(state: MessagesState):
        return {"messages": [
            ToolMessage(content="lookup", tool_call_id="call-1"),
            AIMessage(content=f"seen {len(state['messages'])}"),
        ]}

    builder = StateGraph(MessagesState)
    builder.add_node("respond", respond)
    builder.add_edge(START, "respond")
    builder.add_edge("respond", END)
    graph = builder.compile(checkpointer=saver)

    config = {"configurable": {"thread_id": "slack-C1-U1"}}
    graph.invoke({"messages": [HumanMessage(content="first")]}, config)
    graph.invoke({"messages": [HumanMessage(content="second")]}, config)

    session = session_factory()
    try:
        checkpoint = ConversationService.get_checkpoint(session, "slack-C1-U1")
    finally:
        session.close()
    assert [m.content for m in checkpoint.messages] == ["first", "seen 1", "second", "seen 3"]
