"""HTML/CSS/JS for the session list and the plain-text editor - no build step."""

STYLE = """
:root {
	--bg: #0d1117;
	--bg-card: #161b22;
	--border: #30363d;
	--text: #c9d1d9;
	--text-dim: #8b949e;
	--text-bright: #f0f6fc;
	--accent: #58a6ff;
	--green: #3fb950;
	--red: #f85149;
	--yellow: #d29922;
	--mono: "SF Mono", "Cascadia Code", "Fira Code", Consolas, monospace;
}
* { margin: 0; padding: 0; box-sizing: border-box; }
body {
	background: var(--bg);
	color: var(--text);
	font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Helvetica, Arial, sans-serif;
	line-height: 1.5;
}
.header {
	display: flex;
	align-items: center;
	justify-content: space-between;
	padding: 16px 24px;
	border-bottom: 1px solid var(--border);
	background: var(--bg-card);
}
.header h1 { font-size: 18px; color: var(--text-bright); font-weight: 600; }
.container { padding: 24px; max-width: 1200px; margin: 0 auto; }
.banner { padding: 10px 16px; border-radius: 6px; margin-bottom: 12px; display: none; }
.banner.show { display: block; }
.banner.locked { background: #2d2a1a; border: 1px solid var(--yellow); }
.banner.conflict { background: #2d1a1a; border: 1px solid var(--red); }
.banner.restore { background: #1a222d; border: 1px solid var(--accent); }
textarea {
	width: 100%;
	min-height: 70vh;
	background: var(--bg-card);
	color: var(--text);
	border: 1px solid var(--border);
	border-radius: 6px;
	padding: 12px;
	font-family: var(--mono);
	font-size: 13px;
}
button {
	background: var(--bg-card);
	color: var(--text-bright);
	border: 1px solid var(--border);
	border-radius: 6px;
	padding: 6px 14px;
	cursor: pointer;
}
button:disabled { opacity: 0.5; cursor: default; }
table { width: 100%; border-collapse: collapse; }
td, th { padding: 8px; border-bottom: 1px solid var(--border); text-align: left; }
a { color: var(--accent); }
.phase { font-family: var(--mono); color: var(--text-dim); }
"""

LIST_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>pl4n sessions</title>
<style>""" + STYLE + """</style>
</head>
<body>
<div class="header"><h1>pl4n sessions</h1></div>
<div class="container">
<table>
<thead><tr><th>Session</th><th>Task</th><th>Turn</th><th>Phase</th><th>Updated</th></tr></thead>
<tbody id="sessions"></tbody>
</table>
</div>
<script>
const token = new URLSearchParams(location.search).get("t") || "";

function escapeHtml(s) {
	const div = document.createElement("div");
	div.textContent = s;
	return div.innerHTML;
}

async function load() {
	const r = await fetch(`/api/sessions?t=${encodeURIComponent(token)}`);
	if (!r.ok) return;
	const data = await r.json();
	document.getElementById("sessions").innerHTML = data.sessions.map(s => `
		<tr>
			<td>${s.edit_path ? `<a href="${s.edit_path}">${escapeHtml(s.session_id)}</a>` : escapeHtml(s.session_id)}</td>
			<td>${escapeHtml(s.task)}</td>
			<td>${s.turn}</td>
			<td class="phase">${s.phase}</td>
			<td>${new Date(s.updated_at).toLocaleString()}</td>
		</tr>`).join("");
}

load();
const events = new EventSource(`/api/events?t=${encodeURIComponent(token)}`);
events.addEventListener("session_update", load);
</script>
</body>
</html>
"""

EDITOR_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>pl4n editor</title>
<style>""" + STYLE + """</style>
</head>
<body>
<div class="header">
	<h1 id="title">pl4n</h1>
	<div>
		<button id="save">Save</button>
		<button id="continue">Continue</button>
		<button id="approve">Approve</button>
	</div>
</div>
<div class="container">
	<div id="locked" class="banner locked">This plan is read-only.</div>
	<div id="conflict" class="banner conflict">
		The plan changed on disk. <button id="reload">Reload</button>
	</div>
	<div id="restore" class="banner restore">
		Unsaved edits were recovered. <button id="restore-yes">Restore</button> <button id="restore-no">Discard</button>
	</div>
	<div id="message" class="banner"></div>
	<textarea id="editor" spellcheck="false"></textarea>
</div>
<script>
const sessionId = location.pathname.split("/").pop();
const token = new URLSearchParams(location.search).get("t") || "";
const base = `/api/session/${sessionId}`;
const q = `?t=${encodeURIComponent(token)}`;
const editor = document.getElementById("editor");
let mtime = null;
let autosave = null;
let autosaveTimer = null;

function show(id, on) { document.getElementById(id).classList.toggle("show", on); }

function say(text) {
	const el = document.getElementById("message");
	el.textContent = text;
	show("message", Boolean(text));
}

function setReadOnly(readOnly) {
	editor.readOnly = readOnly;
	for (const id of ["save", "continue", "approve"]) document.getElementById(id).disabled = readOnly;
	show("locked", readOnly);
}

async function post(path, body, method = "POST") {
	return fetch(`${base}/${path}${q}`, {
		method,
		headers: {"Content-Type": "application/json"},
		body: body === undefined ? undefined : JSON.stringify(body),
	});
}

async function handle(r) {
	if (r.status === 409) {
		const data = await r.json();
		if (data.mtime !== undefined && data.error === "stale content") { show("conflict", true); return null; }
		say(data.error);
		return null;
	}
	if (r.status === 423) { setReadOnly(true); return null; }
	if (!r.ok) { say((await r.json()).error || `HTTP ${r.status}`); return null; }
	say("");
	return r.json();
}

async function load() {
	const r = await fetch(`${base}/content${q}`);
	const data = await handle(r);
	if (!data) return;
	editor.value = data.content;
	mtime = data.mtime;
	autosave = data.autosave;
	document.getElementById("title").textContent = `${sessionId} - turn ${data.turn} (${data.phase})`;
	setReadOnly(data.readOnly);
	show("conflict", false);
	show("restore", data.hasAutosave && !data.readOnly);
}

document.getElementById("save").onclick = async () => {
	const data = await handle(await post("save", {content: editor.value, mtime}));
	if (data) { mtime = data.mtime; say("Saved"); }
};

document.getElementById("continue").onclick = async () => {
	const data = await handle(await post("continue", {content: editor.value, mtime}));
	if (data) { setReadOnly(true); say(`Turn ${data.turn} started`); }
};

document.getElementById("approve").onclick = async () => {
	const data = await handle(await post("approve"));
	if (data) { setReadOnly(true); say(`Approved turn ${data.final_turn}`); }
};

document.getElementById("reload").onclick = load;
document.getElementById("restore-yes").onclick = () => { editor.value = autosave; show("restore", false); };
document.getElementById("restore-no").onclick = async () => { await post("autosave", undefined, "DELETE"); show("restore", false); };

editor.addEventListener("input", () => {
	clearTimeout(autosaveTimer);
	autosaveTimer = setTimeout(() => post("autosave", {content: editor.value}), 1500);
});

load();
const events = new EventSource(`/api/events?session=${encodeURIComponent(sessionId)}&t=${encodeURIComponent(token)}`);
events.addEventListener("session_update", (e) => {
	const update = JSON.parse(e.data);
	if (update.phase === "user_review" || update.phase === "approved") load();
	else setReadOnly(true);
});
</script>
</body>
</html>
"""
